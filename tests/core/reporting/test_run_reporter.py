"""
Tests for run reporting.
"""

import json

from clmharness.core.rebalance import ScenarioOutcome
from clmharness.core.reporting import RunReporter


def populated() -> RunReporter:
    reporter = RunReporter("rebalance", "testnet")
    reporter.record("Vault A", ScenarioOutcome(name="rebalance", success=True), address="0xa", dex="quickswap")
    reporter.record("Vault A", ScenarioOutcome.fail("large-up", "expected both movement"))
    reporter.record("Vault B", ScenarioOutcome.skip("rebalance", "tick or range unavailable"))
    reporter.add_diagnostic("Skipped vault C: no contract code", vault="Vault C")
    return reporter


class TestRunReporter:
    def test_summary_counts(self):
        summary = populated().summary
        assert (summary.total, summary.passed, summary.failed, summary.skipped) == (3, 1, 1, 1)

    def test_report_shape(self):
        report = populated().to_dict()

        assert report["suite"] == "rebalance"
        assert report["network"] == "testnet"
        assert report["endTime"] is None
        vault_a = report["vaults"][0]
        assert vault_a["name"] == "Vault A"
        assert vault_a["dex"] == "quickswap"
        assert [s["name"] for s in vault_a["scenarios"]] == ["rebalance", "large-up"]
        assert report["diagnostics"][0]["vault"] == "Vault C"

    def test_markdown(self):
        markdown = populated().to_markdown()

        assert markdown.startswith("# rebalance")
        assert "| large-up | failed | expected both movement |" in markdown
        assert "| rebalance | skipped | tick or range unavailable |" in markdown
        assert "## Diagnostics" in markdown

    def test_finalize_writes_both_files(self, tmp_path):
        reporter = populated()

        json_path, md_path = reporter.finalize(tmp_path / "results", prefix="rebalance-testnet")

        assert json_path.parent == tmp_path / "results"
        assert json_path.name.startswith("rebalance-testnet-")
        assert json_path.suffix == ".json"
        assert md_path.with_suffix(".json") == json_path
        data = json.loads(json_path.read_text())
        assert data["summary"]["total"] == 3
        assert data["endTime"] is not None
