"""Run reporting."""

from .reporter import RunReporter, RunSummary, VaultReport

__all__ = ["RunReporter", "RunSummary", "VaultReport"]
