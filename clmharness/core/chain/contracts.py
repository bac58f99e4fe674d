"""
Read-only contract access.

``ChainReader`` is the seam every probe and executor reads through; the RPC
implementation encodes calldata, runs eth_call under the retry policy and
decodes the result.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from eth_abi.exceptions import DecodingError

from clmharness.core.recovery import ContractCallError
from clmharness.providers.rpc import JsonRpcClient

from .abi import AbiFunction, DecodedOutput


class ChainReader(ABC):
    """Abstract read access to contracts."""

    @abstractmethod
    async def has_code(self, address: str) -> bool:
        """True when bytecode is deployed at the address."""

    @abstractmethod
    async def call(
        self,
        address: str,
        function: AbiFunction,
        *args: Any,
        sender: Optional[str] = None,
    ) -> DecodedOutput:
        """Run a view call and decode its outputs."""

    async def call_value(self, address: str, function: AbiFunction, *args: Any) -> Any:
        """Call a single-output function and return the bare value."""
        result = await self.call(address, function, *args)
        return result[0]


class RpcChainReader(ChainReader):
    def __init__(self, rpc: JsonRpcClient):
        self.rpc = rpc

    async def has_code(self, address: str) -> bool:
        code = await self.rpc.get_code(address)
        return bool(code) and code not in ("0x", "0x0")

    async def call(
        self,
        address: str,
        function: AbiFunction,
        *args: Any,
        sender: Optional[str] = None,
    ) -> DecodedOutput:
        data = await self.rpc.eth_call(address, function.encode_call(*args), sender=sender)
        if not function.outputs:
            return DecodedOutput(())
        if not data or data == "0x":
            raise ContractCallError(
                f"{function.signature} on {address} returned no data",
                address=address,
                method=function.signature,
            )
        try:
            return function.decode_output(data)
        except (DecodingError, ValueError) as e:
            raise ContractCallError(
                f"{function.signature} on {address} returned undecodable data: {e}",
                address=address,
                method=function.signature,
            ) from e
