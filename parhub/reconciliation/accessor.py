"""
Case-insensitive, synonym-tolerant field access over heterogeneous rows.

Legacy tables and spreadsheet exports name the same field differently
(``Phone``, ``phone_number``, ``PrimaryPhone``...). ``RowAccessor`` builds a
lowercase-keyed map once per row and probes it with an ordered synonym list;
``FieldContract`` projects a whole row into canonical field names.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Tuple

Normalizer = Callable[[object | None], object | None]


def is_blank(value: object | None) -> bool:
    """``None`` and whitespace-only strings count as missing."""
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _strip_string(value: object | None) -> object | None:
    if isinstance(value, str):
        return value.strip()
    return value


class RowAccessor:
    """Probe a single record by ordered, case-insensitive candidate names."""

    __slots__ = ("_values", "_raw")

    def __init__(self, row: Mapping[str, object] | None) -> None:
        self._raw = row or {}
        self._values: dict[str, object] = {}
        for key, value in self._raw.items():
            if key is None:
                continue
            lowered = str(key).strip().lower()
            # First occurrence wins when two headers collapse to one key.
            self._values.setdefault(lowered, value)

    def get(self, candidates: Iterable[str], default: object | None = None) -> object | None:
        """Return the first defined, non-empty value among ``candidates``."""
        for candidate in candidates:
            value = self._values.get(str(candidate).strip().lower())
            if not is_blank(value):
                return value
        return default

    def get_str(self, candidates: Iterable[str]) -> str | None:
        value = self.get(candidates)
        if value is None:
            return None
        return str(value).strip()

    def has_any(self, candidates: Iterable[str]) -> bool:
        return any(str(candidate).strip().lower() in self._values for candidate in candidates)

    def keys(self) -> Tuple[str, ...]:
        return tuple(self._values.keys())

    @property
    def raw(self) -> Mapping[str, object]:
        return self._raw


@dataclass(frozen=True)
class FieldSynonyms:
    """A canonical field and the ordered source names it may appear under."""

    name: str
    synonyms: Tuple[str, ...]
    description: str = ""
    normalizer: Normalizer | None = _strip_string

    def read(self, accessor: RowAccessor) -> object | None:
        value = accessor.get(self.synonyms)
        if value is None:
            return None
        if self.normalizer is not None:
            value = self.normalizer(value)
        if is_blank(value):
            return None
        return value


@dataclass(frozen=True)
class FieldContract:
    """A versioned, ordered set of ``FieldSynonyms`` entries for one source shape."""

    name: str
    version: str
    fields: Tuple[FieldSynonyms, ...]

    def field(self, name: str) -> FieldSynonyms:
        for entry in self.fields:
            if entry.name == name:
                return entry
        raise KeyError(f"{self.name} v{self.version} has no field '{name}'")

    def synonyms(self, name: str) -> Tuple[str, ...]:
        return self.field(name).synonyms

    def project(self, row: Mapping[str, object] | RowAccessor) -> dict[str, object | None]:
        """Map ``row`` into ``{canonical_name: value}`` for every declared field."""
        accessor = row if isinstance(row, RowAccessor) else RowAccessor(row)
        return {entry.name: entry.read(accessor) for entry in self.fields}

    def bind_columns(self, columns: Iterable[str], find_column) -> dict[str, str | None]:
        """Resolve each field to an actual column name using ``find_column``."""
        column_list = list(columns)
        return {entry.name: find_column(column_list, entry.synonyms) for entry in self.fields}
