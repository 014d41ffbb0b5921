from __future__ import annotations

from typing import Dict


class IndicatorCache:
    """Last computed indicator values per symbol. Every write overwrites; nothing here is authoritative."""

    def __init__(self) -> None:
        self._values: Dict[str, Dict[str, float]] = {}

    def put(self, symbol: str, name: str, value: float) -> None:
        self._values.setdefault(symbol, {})[name] = float(value)

    def update(self, symbol: str, values: Dict[str, float]) -> None:
        for name, value in values.items():
            self.put(symbol, name, value)

    def get(self, symbol: str, name: str):
        return self._values.get(symbol, {}).get(name)

    def snapshot(self, symbol: str) -> Dict[str, float]:
        return dict(self._values.get(symbol, {}))
