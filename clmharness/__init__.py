"""Rebalance test harness for concentrated-liquidity vaults."""

__version__ = "0.1.0"
