"""Chain providers."""

from .rpc import JsonRpcClient

__all__ = ["JsonRpcClient"]
