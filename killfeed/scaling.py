"""Value scaling used as a retention multiplier."""
import math

# ISK value that maps to a multiplier of exactly 1.0
REFERENCE_VALUE = 10_000_000


def scale_value(total_value: float, floor: float = 0.5) -> float:
    """
    Map a raw ISK value onto a retention multiplier.

    Logarithmic in the value so that billion-ISK kills linger noticeably
    longer than pods without dominating the screen. Never returns less than
    ``floor``; a zero multiplier would evict a killmail on the next sweep.

    Args:
        total_value: Non-negative value reported by zKillboard
        floor: Smallest multiplier returned, must be positive

    Returns:
        Multiplier, monotonic non-decreasing in ``total_value``
    """
    if floor <= 0:
        raise ValueError("floor must be positive")
    value = max(0.0, float(total_value))
    return max(floor, math.log10(1 + value) / math.log10(1 + REFERENCE_VALUE))
