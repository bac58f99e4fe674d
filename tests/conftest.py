"""
Shared fakes: an in-memory contract reader and a recording transaction sender.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from clmharness.core.chain.abi import AbiFunction, DecodedOutput
from clmharness.core.chain.contracts import ChainReader
from clmharness.core.execution import TransactionResult, TransactionSender, TransactionStatus
from clmharness.core.recovery import ContractCallError
from clmharness.deployment import Deployment


def addr(n: int) -> str:
    """Deterministic lowercase address."""
    return "0x" + f"{n:040x}"


WALLET = addr(0xA11CE)
USDT = addr(0x1001)
MUSD = addr(0x1002)
USDC = addr(0x1003)
LOTUS_ROUTER = addr(0x2001)
QS_ROUTER = addr(0x2002)
QS_DEPLOYER = addr(0x2003)
POOL_USDT_MUSD = addr(0x3001)
POOL_USDC_MUSD = addr(0x3002)
VAULT = addr(0x4001)
STRATEGY = addr(0x4002)


class FakeChain(ChainReader):
    """
    Programmable ChainReader.

    ``responses`` maps ``(address, function name)`` to a value, a tuple of
    values, an exception instance, or a callable taking the call args.
    ERC-20 balanceOf/allowance fall back to the ``balances``/``allowances`` tables.
    """

    def __init__(self) -> None:
        self.codes: set = set()
        self.responses: Dict[Tuple[str, str], Any] = {}
        self.balances: Dict[Tuple[str, str], int] = {}
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.calls: List[Tuple[str, str, tuple]] = []

    def deploy(self, *addresses: str) -> None:
        self.codes.update(a.lower() for a in addresses)

    def respond(self, address: str, name: str, value: Any) -> None:
        self.responses[(address.lower(), name)] = value

    def set_balance(self, token: str, owner: str, amount: int) -> None:
        self.balances[(token.lower(), owner.lower())] = amount

    def balance(self, token: str, owner: str) -> int:
        return self.balances.get((token.lower(), owner.lower()), 0)

    async def has_code(self, address: str) -> bool:
        return address.lower() in self.codes

    async def call(self, address: str, function: AbiFunction, *args: Any, sender: Optional[str] = None) -> DecodedOutput:
        self.calls.append((address.lower(), function.name, args))
        key = (address.lower(), function.name)

        if key in self.responses:
            value = self.responses[key]
            if callable(value) and not isinstance(value, type):
                value = value(*args)
        elif function.name == "balanceOf":
            value = self.balance(address, args[0])
        elif function.name == "allowance":
            value = self.allowances.get((address.lower(), args[0].lower(), args[1].lower()), 0)
        else:
            raise ContractCallError(f"{function.signature} on {address} returned no data")

        if isinstance(value, BaseException):
            raise value
        if isinstance(value, DecodedOutput):
            return value
        if isinstance(value, tuple):
            return DecodedOutput(value, function.output_names)
        if not function.outputs:
            return DecodedOutput(())
        return DecodedOutput((value,), function.output_names)

    def called(self, address: str, name: str) -> int:
        return sum(1 for a, n, _ in self.calls if a == address.lower() and n == name)


class FakeSender(TransactionSender):
    """Records sent transactions; ``on_send(to, data)`` applies side effects or raises."""

    def __init__(self, address: str = WALLET, on_send: Optional[Callable[[str, str], Any]] = None):
        self._address = address
        self.on_send = on_send
        self.sent: List[Tuple[str, str, str]] = []
        self.idle_waits = 0
        self._block = 100

    @property
    def address(self) -> str:
        return self._address

    async def wait_until_idle(self) -> None:
        self.idle_waits += 1

    async def send(self, to: str, data: str, label: str = "", gas_limit: Optional[int] = None) -> TransactionResult:
        self.sent.append((to.lower(), data, label))
        if self.on_send:
            self.on_send(to, data)
        self._block += 1
        return TransactionResult(
            tx_hash="0x" + f"{len(self.sent):064x}",
            status=TransactionStatus.CONFIRMED,
            block_number=self._block,
            gas_used=21000,
            label=label,
        )

    def labels(self) -> List[str]:
        return [label for _, _, label in self.sent]


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def fake_sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def deployment() -> Deployment:
    return Deployment.model_validate({
        "network": "testnet",
        "tokens": {"USDT": USDT, "mUSD": MUSD, "USDC": USDC},
        "dexes": {
            "lotus": {
                "dialect": "uniswap_v3",
                "router": LOTUS_ROUTER,
                "default_fee_tier": 500,
                "pools": {"USDC_mUSD": POOL_USDC_MUSD},
            },
            "quickswap": {
                "dialect": "algebra",
                "router": QS_ROUTER,
                "pool_deployer": QS_DEPLOYER,
                "pools": {"USDT_mUSD": POOL_USDT_MUSD},
            },
        },
        "vaults": [
            {
                "name": "QuickSwap USDT-mUSD",
                "dex": "quickswap",
                "vault": VAULT,
                "strategy": STRATEGY,
                "token0": "USDT",
                "token1": "mUSD",
            },
            {
                "name": "Unconfigured",
                "dex": "lotus",
                "vault": "0x0000000000000000000000000000000000000000",
                "token0": "USDC",
                "token1": "mUSD",
            },
        ],
    })
