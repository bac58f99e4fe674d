"""Swap execution."""

from .executor import SwapExecutor, minimum_out, spot_amount_out
from .models import SwapRequest, SwapResult

__all__ = ["SwapExecutor", "minimum_out", "spot_amount_out", "SwapRequest", "SwapResult"]
