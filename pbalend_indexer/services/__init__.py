"""Service modules"""
from .indexer import Indexer

__all__ = ["Indexer"]
