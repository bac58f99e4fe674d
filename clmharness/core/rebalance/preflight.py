"""
Preflight checks run once before any vault is touched.
"""

import logging
from typing import Any, List, Optional

from .models import ScenarioOutcome


logger = logging.getLogger(__name__)

PREFLIGHT_GROUP = "preflight"


class Preflight:
    """
    Confirms the node serves the configured chain and the signer can pay gas.

    ``rpc`` needs ``chain_id()`` and ``get_balance(address)``; an expected
    chain id of ``None`` only records what the node reports.
    """

    def __init__(self, rpc: Any, account: str, expected_chain_id: Optional[int] = None):
        self.rpc = rpc
        self.account = account
        self.expected_chain_id = expected_chain_id

    async def check_chain_id(self) -> ScenarioOutcome:
        chain_id = await self.rpc.chain_id()
        details = {"chainId": chain_id, "expected": self.expected_chain_id}
        if self.expected_chain_id is not None and chain_id != self.expected_chain_id:
            return ScenarioOutcome.fail(
                "chainId",
                f"node reports chainId {chain_id}, expected {self.expected_chain_id}",
                **details,
            )
        return ScenarioOutcome(name="chainId", success=True, note=f"chainId={chain_id}", details=details)

    async def check_gas(self) -> ScenarioOutcome:
        balance = await self.rpc.get_balance(self.account)
        details = {"account": self.account, "balanceWei": str(balance)}
        if balance <= 0:
            return ScenarioOutcome.fail("gas", f"signer {self.account} has no native balance for gas", **details)
        return ScenarioOutcome(name="gas", success=True, note=f"balanceWei={balance}", details=details)

    async def run(self) -> List[ScenarioOutcome]:
        outcomes = [await self.check_chain_id(), await self.check_gas()]
        for outcome in outcomes:
            if outcome.success:
                logger.info(f"Preflight {outcome.name}: {outcome.note}")
            else:
                logger.error(f"Preflight {outcome.name} failed: {outcome.note}")
        return outcomes
