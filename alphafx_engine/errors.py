from __future__ import annotations


class InvalidParameter(ValueError):
    """Raised on caller misuse: non-positive periods, empty backtest series, unknown algorithms."""


def require_positive(name: str, value) -> None:
    if value is None or value <= 0:
        raise InvalidParameter(f"{name} must be > 0 (got {value!r})")
