"""Contract access: ABI codec, readers and ERC-20 helpers."""

from .abi import AbiFunction, DecodedOutput, decode_revert_reason
from .contracts import ChainReader, RpcChainReader
from .tokens import MAX_UINT256, Erc20, TokenMeta

__all__ = [
    "AbiFunction",
    "DecodedOutput",
    "decode_revert_reason",
    "ChainReader",
    "RpcChainReader",
    "MAX_UINT256",
    "Erc20",
    "TokenMeta",
]
