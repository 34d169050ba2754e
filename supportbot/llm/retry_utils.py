"""
LLM Retry Utilities

Temperature schedule for structured-output retries.
"""

from typing import Optional


def get_retry_temperature(
    base_temp: float,
    attempt: int,
    step: float = 0.05,
    min_temp: float = 0.05,
    max_temp: Optional[float] = None
) -> float:
    """
    Temperature for a retry attempt with progressive tightening.

    Args:
        base_temp: Starting temperature (attempt 0)
        attempt: Current attempt number (0-indexed)
        step: Amount to decrease temperature per attempt
        min_temp: Minimum temperature floor
        max_temp: Maximum temperature ceiling (optional)

    Examples:
        >>> get_retry_temperature(0.2, 0)
        0.2
        >>> round(get_retry_temperature(0.2, 2), 2)
        0.1
        >>> get_retry_temperature(0.2, 5)
        0.05
    """
    tightened = max(min_temp, base_temp - (attempt * step))
    if max_temp is not None:
        tightened = min(max_temp, tightened)
    return tightened
