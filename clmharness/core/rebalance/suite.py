"""
Suite runner: applies scenarios to every usable vault and records outcomes.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from clmharness.core.chain.contracts import ChainReader
from clmharness.core.recovery import NoUsableVaultsError, PreflightError, UnrecoverableError
from clmharness.core.reporting import RunReporter
from clmharness.deployment import Deployment, VaultConfig
from clmharness.logging_config import bind_run_context, clear_run_context

from .models import TradeScenario
from .orchestrator import RebalanceOrchestrator
from .preflight import PREFLIGHT_GROUP, Preflight


logger = logging.getLogger(__name__)


class RebalanceSuite:
    """
    Runs the rebalance scenario (and optionally trade scenarios) per vault.

    With ``journey_deposit`` set, each vault is deposited into first and
    withdrawn from last, bracketing its trade and rebalance scenarios.
    Unusable vaults are skipped with a diagnostic; the run aborts only when
    preflight fails or no vault is usable at all.
    """

    def __init__(
        self,
        orchestrator: RebalanceOrchestrator,
        deployment: Deployment,
        reader: ChainReader,
        reporter: RunReporter,
        trade_scenarios: Sequence[TradeScenario] = (),
        run_rebalance: bool = True,
        preflight: Optional[Preflight] = None,
        journey_deposit: Optional[Decimal] = None,
    ):
        self.orchestrator = orchestrator
        self.deployment = deployment
        self.reader = reader
        self.reporter = reporter
        self.trade_scenarios = list(trade_scenarios)
        self.run_rebalance = run_rebalance
        self.preflight = preflight
        self.journey_deposit = journey_deposit

    async def run_preflight(self) -> None:
        if self.preflight is None:
            return
        failures: Dict[str, str] = {}
        for outcome in await self.preflight.run():
            self.reporter.record(PREFLIGHT_GROUP, outcome)
            if not outcome.success:
                failures[outcome.name] = outcome.note or "failed"
        if failures:
            for name, note in failures.items():
                self.reporter.add_diagnostic(f"Preflight {name} failed: {note}", check=name)
            raise PreflightError(failures)

    async def usable_vaults(self, names: Optional[Iterable[str]] = None) -> List[VaultConfig]:
        wanted = {n.lower() for n in names} if names else None
        usable: List[VaultConfig] = []
        skipped: Dict[str, str] = {}

        for vault in self.deployment.usable_vaults():
            if wanted is not None and vault.name.lower() not in wanted:
                continue
            reason = await self._unusable_reason(vault)
            if reason:
                skipped[vault.name] = reason
                self.reporter.add_diagnostic(f"Skipped vault {vault.name}: {reason}", vault=vault.name)
                logger.warning(f"Skipping vault {vault.name}: {reason}")
                continue
            usable.append(vault)

        if not usable:
            raise NoUsableVaultsError(skipped)
        return usable

    async def _unusable_reason(self, vault: VaultConfig) -> Optional[str]:
        try:
            self.deployment.dex(vault.dex)
        except UnrecoverableError as e:
            return str(e)
        if not await self.reader.has_code(vault.vault):
            return f"no contract code at {vault.vault}"
        if not self.deployment.pool_for_vault(vault):
            return "no pool configured"
        return None

    async def run_vault(self, vault: VaultConfig) -> None:
        meta = {
            "address": vault.vault,
            "dex": vault.dex,
            "pool": self.deployment.pool_for_vault(vault),
        }
        deposited = False
        if self.journey_deposit is not None:
            outcome = await self.orchestrator.run_deposit_scenario(vault, self.journey_deposit)
            self.reporter.record(vault.name, outcome, **meta)
            deposited = outcome.success
        for scenario in self.trade_scenarios:
            outcome = await self.orchestrator.run_trade_scenario(vault, scenario)
            self.reporter.record(vault.name, outcome, **meta)
        if self.run_rebalance:
            outcome = await self.orchestrator.run_rebalance_scenario(vault)
            self.reporter.record(vault.name, outcome, **meta)
        # Only vaults this run deposited into are withdrawn from
        if deposited:
            outcome = await self.orchestrator.run_withdraw_scenario(vault)
            self.reporter.record(vault.name, outcome, **meta)

    async def run(self, vault_names: Optional[Iterable[str]] = None) -> RunReporter:
        bind_run_context(suite=self.reporter.suite, network=self.reporter.network)
        try:
            await self.run_preflight()
            for vault in await self.usable_vaults(vault_names):
                bind_run_context(vault=vault.name)
                await self.run_vault(vault)
                clear_run_context("vault")
        finally:
            clear_run_context()
        return self.reporter
