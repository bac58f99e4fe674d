"""
Run reporting.

Collects scenario outcomes per vault and writes the run report once, at the
end of a suite, as JSON plus a markdown rendering.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from clmharness.core.rebalance.models import ScenarioOutcome


logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0

    def record(self, outcome: ScenarioOutcome) -> None:
        self.total += 1
        if outcome.skipped:
            self.skipped += 1
        elif outcome.success:
            self.passed += 1
        else:
            self.failed += 1

    def to_dict(self) -> Dict[str, int]:
        return {"total": self.total, "passed": self.passed, "failed": self.failed, "skipped": self.skipped}


@dataclass
class VaultReport:
    name: str
    meta: Dict[str, Any] = field(default_factory=dict)
    scenarios: List[ScenarioOutcome] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            **self.meta,
            "scenarios": [s.to_dict() for s in self.scenarios],
        }


class RunReporter:
    """Accumulates a run and writes ``<prefix>-<timestamp>.json`` / ``.md``."""

    def __init__(self, suite: str, network: str):
        self.suite = suite
        self.network = network
        self.start_time = datetime.now(timezone.utc)
        self.end_time: Optional[datetime] = None
        self.summary = RunSummary()
        self.vaults: Dict[str, VaultReport] = {}
        self.diagnostics: List[Dict[str, Any]] = []

    def vault(self, name: str, **meta: Any) -> VaultReport:
        if name not in self.vaults:
            self.vaults[name] = VaultReport(name=name, meta=meta)
        elif meta:
            self.vaults[name].meta.update(meta)
        return self.vaults[name]

    def record(self, vault_name: str, outcome: ScenarioOutcome, **meta: Any) -> None:
        self.vault(vault_name, **meta).scenarios.append(outcome)
        self.summary.record(outcome)
        status = "SKIP" if outcome.skipped else ("PASS" if outcome.success else "FAIL")
        logger.info(f"[{status}] {vault_name} / {outcome.name}" + (f": {outcome.note}" if outcome.note else ""))

    def add_diagnostic(self, message: str, **data: Any) -> None:
        self.diagnostics.append({"message": message, **data})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suite": self.suite,
            "network": self.network,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "summary": self.summary.to_dict(),
            "vaults": [v.to_dict() for v in self.vaults.values()],
            "diagnostics": self.diagnostics,
        }

    def to_markdown(self) -> str:
        lines = [
            f"# {self.suite}",
            "",
            f"- Network: {self.network}",
            f"- Start: {self.start_time.isoformat()}",
            f"- End: {self.end_time.isoformat() if self.end_time else '-'}",
            f"- Total: {self.summary.total} | Passed: {self.summary.passed} | "
            f"Failed: {self.summary.failed} | Skipped: {self.summary.skipped}",
            "",
        ]
        for vault in self.vaults.values():
            lines.append(f"## {vault.name}")
            lines.append("")
            lines.append("| Scenario | Result | Note |")
            lines.append("|---|---|---|")
            for outcome in vault.scenarios:
                result = "skipped" if outcome.skipped else ("passed" if outcome.success else "failed")
                lines.append(f"| {outcome.name} | {result} | {outcome.note or ''} |")
            lines.append("")
        if self.diagnostics:
            lines.append("## Diagnostics")
            lines.append("")
            for diagnostic in self.diagnostics:
                lines.append(f"- {diagnostic['message']}")
            lines.append("")
        return "\n".join(lines)

    def finalize(self, results_dir: Path, prefix: Optional[str] = None) -> Tuple[Path, Path]:
        self.end_time = datetime.now(timezone.utc)
        results_dir = Path(results_dir)
        results_dir.mkdir(parents=True, exist_ok=True)

        slug = self.start_time.strftime("%Y-%m-%dT%H-%M-%S")
        stem = f"{prefix or self.suite}-{slug}"
        json_path = results_dir / f"{stem}.json"
        md_path = results_dir / f"{stem}.md"

        json_path.write_text(json.dumps(self.to_dict(), indent=2, default=str))
        md_path.write_text(self.to_markdown())
        logger.info(f"Report written to {json_path}")
        return json_path, md_path
