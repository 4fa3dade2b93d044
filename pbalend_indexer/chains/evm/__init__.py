from .client import EthRpcClient

__all__ = ["EthRpcClient"]
