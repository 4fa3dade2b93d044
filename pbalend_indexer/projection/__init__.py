"""Event-to-state projection."""
from .engine import ProjectionEngine, ProjectionStats

__all__ = ["ProjectionEngine", "ProjectionStats"]
