"""
ABI function descriptions and calldata codec.

Functions are described by human-readable signatures of the form
``name(inputTypes)(outputType name, ...)`` so probe lists can live in
configuration as plain strings.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import function_signature_to_4byte_selector, to_hex

ERROR_STRING_SELECTOR = "0x08c379a0"   # Error(string)
PANIC_SELECTOR = "0x4e487b71"          # Panic(uint256)


class DecodedOutput(tuple):
    """Decoded return values; positional like a tuple, with named access where the ABI names them."""

    fields: Dict[str, Any]

    def __new__(cls, values: Sequence[Any], names: Sequence[Optional[str]] = ()):
        obj = super().__new__(cls, values)
        obj.fields = {name: value for name, value in zip(names, values) if name}
        return obj

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


def _split_top_level(text: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current = ""
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current.strip())
            current = ""
        else:
            current += ch
    if current.strip():
        parts.append(current.strip())
    return parts


def _take_group(text: str, start: int) -> Tuple[str, int]:
    """Return the contents of the parenthesized group starting at ``start`` and the index after it."""
    if text[start] != "(":
        raise ValueError(f"Expected '(' at {start} in {text!r}")
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
            if depth == 0:
                return text[start + 1:i], i + 1
    raise ValueError(f"Unbalanced parentheses in {text!r}")


def _parse_params(text: str) -> Tuple[Tuple[str, ...], Tuple[Optional[str], ...]]:
    types: List[str] = []
    names: List[Optional[str]] = []
    for param in _split_top_level(text):
        if param.startswith("("):
            inner, end = _take_group(param, 0)
            type_str = f"({inner}){param[end:].split(' ')[0]}".strip()
            rest = param[end:].strip().split()
            name = rest[-1] if rest and not rest[-1].startswith("[") else None
        else:
            pieces = param.split()
            type_str = pieces[0]
            name = pieces[-1] if len(pieces) > 1 else None
        types.append(type_str)
        names.append(name)
    return tuple(types), tuple(names)


@dataclass(frozen=True)
class AbiFunction:
    """A contract function: name, input types, output types and output names."""

    name: str
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()
    output_names: Tuple[Optional[str], ...] = field(default=())

    @classmethod
    def parse(cls, signature: str) -> "AbiFunction":
        """Parse ``name(inputs)(outputs)``; the output group is optional."""
        signature = signature.strip()
        paren = signature.index("(")
        name = signature[:paren].strip()
        inputs_text, end = _take_group(signature, paren)
        outputs_text = ""
        rest = signature[end:].strip()
        if rest.startswith("returns"):
            rest = rest[len("returns"):].strip()
        if rest:
            outputs_text, _ = _take_group(rest, 0)
        inputs, _ = _parse_params(inputs_text)
        outputs, output_names = _parse_params(outputs_text)
        return cls(name=name, inputs=inputs, outputs=outputs, output_names=output_names)

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> str:
        return to_hex(function_signature_to_4byte_selector(self.signature))

    def encode_call(self, *args: Any) -> str:
        if len(args) != len(self.inputs):
            raise ValueError(f"{self.signature} expects {len(self.inputs)} args, got {len(args)}")
        encoded = abi_encode(list(self.inputs), list(args)) if self.inputs else b""
        return self.selector + encoded.hex()

    def decode_output(self, data: str) -> DecodedOutput:
        raw = bytes.fromhex(data[2:] if data.startswith("0x") else data)
        values = abi_decode(list(self.outputs), raw)
        return DecodedOutput(values, self.output_names)


def decode_revert_reason(data: Optional[str]) -> Optional[str]:
    """Best-effort decode of revert data: Error(string), Panic(uint256) or a bare custom-error selector."""
    if not data or not isinstance(data, str) or len(data) < 10:
        return None
    selector = data[:10].lower()
    try:
        payload = bytes.fromhex(data[10:])
        if selector == ERROR_STRING_SELECTOR:
            (reason,) = abi_decode(["string"], payload)
            return reason
        if selector == PANIC_SELECTOR:
            (code,) = abi_decode(["uint256"], payload)
            return f"panic(0x{code:x})"
    except Exception:  # malformed payloads are reported raw
        return f"unknown revert {data[:10]}"
    return f"custom error {selector}"


def fn(signature: str) -> AbiFunction:
    return AbiFunction.parse(signature)


# ERC-20
ERC20_SYMBOL = fn("symbol()(string)")
ERC20_DECIMALS = fn("decimals()(uint8)")
ERC20_BALANCE_OF = fn("balanceOf(address)(uint256)")
ERC20_ALLOWANCE = fn("allowance(address,address)(uint256)")
ERC20_APPROVE = fn("approve(address,uint256)(bool)")

# Pools
POOL_TOKEN0 = fn("token0()(address)")
POOL_TOKEN1 = fn("token1()(address)")
POOL_LIQUIDITY = fn("liquidity()(uint128)")

# Vault / strategy
VAULT_STRATEGY = fn("strategy()(address)")
VAULT_BALANCE_OF = ERC20_BALANCE_OF
STRATEGY_LP_TOKEN0 = fn("lpToken0()(address)")
STRATEGY_LP_TOKEN1 = fn("lpToken1()(address)")
STRATEGY_REBALANCE = fn("rebalance()")
VAULT_PAUSED = fn("paused()(bool)")
VAULT_DEPOSIT = fn("deposit()(uint256 shares)")
VAULT_WITHDRAW_ALL = fn("withdrawAll(uint256,uint256)(uint256 amount0,uint256 amount1)")
VAULT_WITHDRAW_TO = fn("withdraw(uint256,uint256,uint256,address)(uint256 amount0,uint256 amount1)")
VAULT_WITHDRAW = fn("withdraw(uint256,uint256,uint256)(uint256 amount0,uint256 amount1)")

# Swap entry points
ROUTER_EXACT_INPUT_SINGLE_FEE = fn(
    "exactInputSingle((address,address,uint24,address,uint256,uint256,uint256,uint160))(uint256 amountOut)"
)
ROUTER_EXACT_INPUT_SINGLE_DEPLOYER = fn(
    "exactInputSingle((address,address,address,address,uint256,uint256,uint256,uint160))(uint256 amountOut)"
)
DIRECT_POOL_SWAP = fn("swap(address,bool,int256,uint160)(int256 amount0,int256 amount1)")
