"""
Framelens — Global Variable Table

Content-addressed interning of style-bearing values (fills, strokes, effects,
text styles, layout boxes, layout grids, opacity, corner radii, blend modes).
Nodes hold the returned StyleKey; the value itself is stored once per
simplification run.

Normalization before hashing:
    - keys in STRIPPED_FIELDS are dropped at every level (binding ids and plugin
      payloads that do not change how the value renders)
    - floats are rounded to FLOAT_PRECISION decimals; integral results become ints
    - dict key order is ignored, list order is kept

Usage:
    table = GlobalVariableTable()
    key = table.intern([{"type": "SOLID", "color": "#FF0000"}], prefix="fill")
"""

import json
import math
from hashlib import sha256
from typing import Any

from framelens.config import log

FLOAT_PRECISION = 4
STRIPPED_FIELDS = frozenset({
    "boundVariables",
    "explicitVariableModes",
    "pluginData",
    "sharedPluginData",
})
KEY_DIGEST_CHARS = 16


class UnsupportedValueError(TypeError):
    """Value contains something that has no JSON form (sets, objects, non-str keys)."""


def normalize_value(value: Any) -> Any:
    """Return the canonical form of a JSON-like value. Raises UnsupportedValueError."""
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return value
        rounded = round(value, FLOAT_PRECISION)
        if rounded == int(rounded):
            return int(rounded)
        return rounded
    if isinstance(value, dict):
        normalized = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise UnsupportedValueError(f"non-string key {k!r}")
            if k in STRIPPED_FIELDS:
                continue
            normalized[k] = normalize_value(v)
        return normalized
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    raise UnsupportedValueError(f"unsupported type {type(value).__name__}")


def canonical_json(value: Any) -> str:
    """Order-independent serialization of an already-normalized value."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class GlobalVariableTable:
    """StyleKey → canonical value, insertion-ordered by first occurrence.

    One instance per simplification run. Never share an instance across runs:
    keys are only meaningful next to the table that minted them.
    """

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._content_by_key: dict[str, str] = {}
        self._key_by_content: dict[tuple[str, str], str] = {}
        self._frozen = False

    def intern(self, value: Any, prefix: str = "var") -> str:
        """Return the StyleKey for `value`, storing it on first sight.

        Equal values (after normalization) always get the same key within this
        table. Values that cannot be normalized are stored verbatim under a key
        derived from their repr.
        """
        if self._frozen:
            raise RuntimeError("global variable table is frozen")

        try:
            canonical = normalize_value(value)
            content = canonical_json(canonical)
        except (UnsupportedValueError, ValueError) as e:
            log("WARN", "style value stored verbatim", prefix=prefix, reason=str(e))
            canonical = value
            content = f"{type(value).__name__}:{value!r}"

        existing = self._key_by_content.get((prefix, content))
        if existing is not None:
            return existing

        key = self._mint_key(prefix, content)
        self._values[key] = canonical
        self._content_by_key[key] = content
        self._key_by_content[(prefix, content)] = key
        return key

    def _mint_key(self, prefix: str, content: str) -> str:
        digest = sha256(f"{prefix}\x00{content}".encode()).hexdigest().upper()
        length = KEY_DIGEST_CHARS
        key = f"{prefix}_{digest[:length]}"
        # Extend the digest on the (astronomically unlikely) prefix collision
        while key in self._content_by_key and self._content_by_key[key] != content:
            length += 8
            key = f"{prefix}_{digest[:length]}"
        return key

    def freeze(self) -> dict[str, Any]:
        """Stop accepting new values and return the finalized mapping."""
        self._frozen = True
        return dict(self._values)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def keys(self) -> list[str]:
        return list(self._values)
