"""Checkout engine settings, read from the active domain's ``[custom]`` config.

Values live in ``domain.toml`` (overlaid per ``PROTEAN_ENV``). Every accessor
falls back to a default so the engine also runs against a bare domain.
"""

from protean.utils.globals import current_domain

DEFAULT_STEP_TIMEOUT = 5.0
DEFAULT_MAX_COUNTER_RETRIES = 5
DEFAULT_CURRENCY = "NPR"


def _custom() -> dict:
    custom = current_domain.config.get("custom") or {}
    return custom if isinstance(custom, dict) else {}


def step_timeout() -> float:
    """Seconds a single checkout step may take before the attempt is aborted."""
    return float(_custom().get("checkout_step_timeout", DEFAULT_STEP_TIMEOUT))


def max_counter_retries() -> int:
    """Attempts at a conditional stock/coupon update before giving up."""
    return int(_custom().get("max_counter_retries", DEFAULT_MAX_COUNTER_RETRIES))


def currency() -> str:
    return str(_custom().get("currency", DEFAULT_CURRENCY))
