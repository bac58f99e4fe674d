"""Price impact between two price samples, in integer fixed point."""

IMPACT_SCALE = 1_000_000   # four decimal places of a percent
PERCENT_DIVISOR = 10_000


def _div_toward_zero(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def price_impact_percent(before: int, after: int) -> float:
    """
    Percent change from ``before`` to ``after`` with four-decimal precision.

    Samples can be sqrtPrice-sized or larger, so the ratio is taken on
    integers before converting to float.
    """
    if before == 0:
        return 0.0
    scaled = _div_toward_zero((int(after) - int(before)) * IMPACT_SCALE, int(before))
    return scaled / PERCENT_DIVISOR


def price_from_sqrt(sqrt_price: int) -> int:
    """Q64.96 sqrt price to a Q192 price sample (token1 per token0, raw units)."""
    return int(sqrt_price) ** 2
