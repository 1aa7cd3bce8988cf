"""Runtime instrument overrides and the effective-instrument overlay."""

import json
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from market_moves.core.logger import logger
from market_moves.models.datatypes import Instrument


def effective_instruments(base: Iterable[Instrument], overrides: Mapping[str, Mapping[str, str]]) -> List[Instrument]:
    """Overlay symbol/name overrides onto the base instruments.

    The base definitions are left untouched; overridden entries come back as
    copies flagged ``overridden=True``. Overrides without a symbol are ignored.
    """
    result = []
    for item in base:
        override = overrides.get(item.id) or {}
        symbol = override.get("symbol")
        if symbol:
            result.append(replace(item, symbol=symbol, name=override.get("name") or item.name, overridden=True))
        else:
            result.append(replace(item, overridden=False))
    return result


class OverrideStore:
    """JSON-file map of instrument id → ``{"symbol": ..., "name": ...}``.

    Writes happen immediately on every change so an override survives restarts.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._overrides: Dict[str, Dict[str, str]] = {}

    def load(self) -> None:
        """Read overrides from disk. Missing or malformed files leave it empty."""
        self._overrides = {}
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning(f"OverrideStore: failed to load {self.path}: {exc}")
            return
        if not isinstance(raw, dict):
            logger.warning(f"OverrideStore: ignoring {self.path}, top level is not an object")
            return
        for instrument_id, entry in raw.items():
            if isinstance(entry, dict) and isinstance(entry.get("symbol"), str) and entry["symbol"]:
                self._overrides[instrument_id] = {
                    "symbol": entry["symbol"],
                    "name": str(entry.get("name") or ""),
                }
        logger.info(f"OverrideStore: loaded {len(self._overrides)} symbol overrides")

    def get(self, instrument_id: str) -> Optional[Dict[str, str]]:
        entry = self._overrides.get(instrument_id)
        return dict(entry) if entry else None

    def as_dict(self) -> Dict[str, Dict[str, str]]:
        return {k: dict(v) for k, v in self._overrides.items()}

    def set(self, instrument_id: str, symbol: str, name: str) -> None:
        updated = dict(self._overrides)
        updated[instrument_id] = {"symbol": symbol, "name": name}
        self._save(updated)
        self._overrides = updated

    def remove(self, instrument_id: str) -> bool:
        """Drop an override. Returns True if one existed."""
        updated = dict(self._overrides)
        existed = updated.pop(instrument_id, None) is not None
        self._save(updated)
        self._overrides = updated
        return existed

    def _save(self, overrides: Dict[str, Dict[str, str]]) -> None:
        # OSError propagates to the caller; memory is only updated after a successful write
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(overrides, f, indent=2, ensure_ascii=False)
