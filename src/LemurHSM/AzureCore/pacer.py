# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore.pacer",
#   "purpose": "Expose a pyrate-limiter backed throughput pacer shared by every transfer worker",
#   "sections": [
#     {"id": "parse", "name": "Rate Parsing", "anchor": "PRS", "kind": "helpers"},
#     {"id": "pacer", "name": "Pacer", "anchor": "PAC", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Throughput pacer for object-store requests.

A bandwidth budget such as ``"100/second"`` means 100 MiB per second across
every action in the process.  Each request consults the pacer with a weight of
one unit per started MiB of payload (at least one unit, so body-less requests
are counted too).  Acquisition never blocks inside pyrate-limiter: a denied
worker waits on its action's cancellation token in short slices and retries,
so cancelling an action also releases workers queued for bandwidth.
"""

from __future__ import annotations

import logging
import math
import re
import time
from fractions import Fraction
from typing import Optional, Tuple

from pyrate_limiter import Duration, Limiter, Rate

from LemurHSM.dmplugin.cancellation import ActionCancelled, CancellationToken

logger = logging.getLogger(__name__)

_RATE_LIMIT_PATTERN = re.compile(r"^([\d.]+)/(second|sec|s|minute|min|m|hour|h)$", re.IGNORECASE)
_UNIT_TO_MILLISECONDS = {
    "second": int(Duration.SECOND),
    "sec": int(Duration.SECOND),
    "s": int(Duration.SECOND),
    "minute": int(Duration.MINUTE),
    "min": int(Duration.MINUTE),
    "m": int(Duration.MINUTE),
    "hour": int(Duration.HOUR),
    "h": int(Duration.HOUR),
}

UNIT_BYTES = 1024 * 1024
_POLL_INTERVAL_SEC = 0.05


def parse_rate_string(limit_text: str) -> Tuple[int, int]:
    """Return ``(limit, interval_ms)`` for a rate such as ``"2.5/second"``."""

    match = _RATE_LIMIT_PATTERN.match(limit_text.strip())
    if not match:
        raise ValueError(
            f"Invalid rate limit '{limit_text}'. Expected format: <number>/<unit> "
            "(e.g., '100/second', '6000/minute')"
        )
    raw_value, unit_token = match.groups()
    value = float(raw_value)
    if value <= 0:
        raise ValueError("Rate limit values must be positive")

    base_ms = _UNIT_TO_MILLISECONDS[unit_token.lower()]
    fraction = Fraction(value).limit_denominator(1000)
    limit = max(1, fraction.numerator)
    interval_ms = int(base_ms * fraction.denominator)
    return limit, interval_ms


class Pacer:
    """Process-wide rate limiter safe for concurrent acquisition."""

    def __init__(
        self,
        limit: Optional[int] = None,
        interval_ms: Optional[int] = None,
        *,
        unit_bytes: int = UNIT_BYTES,
        poll_interval: float = _POLL_INTERVAL_SEC,
        name: str = "lhsm-az-pacer",
    ) -> None:
        if (limit is None) != (interval_ms is None):
            raise ValueError("limit and interval_ms must be given together")
        if unit_bytes <= 0:
            raise ValueError(f"unit_bytes must be positive, got {unit_bytes}")
        self._limit = limit
        self._interval_ms = interval_ms
        self._unit_bytes = unit_bytes
        self._poll_interval = poll_interval
        self._name = name
        self._limiter: Optional[Limiter] = None
        if limit is not None:
            self._limiter = Limiter(
                [Rate(limit, interval_ms)],
                raise_when_fail=False,
                max_delay=None,
            )
            logger.debug(
                "Pacer created",
                extra={"limit_units": limit, "interval_ms": interval_ms, "unit_bytes": unit_bytes},
            )

    @classmethod
    def unlimited(cls) -> "Pacer":
        return cls()

    @classmethod
    def from_rate_string(cls, text: str, **kwargs) -> "Pacer":
        limit, interval_ms = parse_rate_string(text)
        return cls(limit, interval_ms, **kwargs)

    @property
    def is_unlimited(self) -> bool:
        return self._limiter is None

    def units_for(self, nbytes: int) -> int:
        return max(1, math.ceil(nbytes / self._unit_bytes))

    def acquire(self, nbytes: int = 0, token: Optional[CancellationToken] = None) -> None:
        """Block until ``nbytes`` of budget is granted.

        Requests heavier than one window are admitted in window-sized slices.

        Raises:
            ActionCancelled: If ``token`` fires while waiting.
        """
        if token is not None:
            token.raise_if_cancelled("transfer")
        if self._limiter is None:
            return

        remaining = self.units_for(nbytes)
        while remaining > 0:
            weight = min(remaining, self._limit)
            while not self._limiter.try_acquire(name=self._name, weight=weight):
                if token is None:
                    time.sleep(self._poll_interval)
                elif token.wait(self._poll_interval):
                    raise ActionCancelled("transfer cancelled while waiting for bandwidth")
            remaining -= weight

    def __repr__(self) -> str:
        if self._limiter is None:
            return "Pacer(unlimited)"
        return f"Pacer({self._limit} units/{self._interval_ms}ms, unit={self._unit_bytes}B)"


__all__ = ["Pacer", "UNIT_BYTES", "parse_rate_string"]
