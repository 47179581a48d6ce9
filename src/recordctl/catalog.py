"""Persistent catalog of record type definitions.

The catalog file (``types.yml`` under the state directory by default) stores
type names and their raw field declarations, never generated code, so a
later CLI invocation can regenerate the same constructors::

    types:
      - name: Widget
        fields: ["[string]Code", "Name"]

Writes are atomic so an interrupted command never leaves a truncated file.
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

try:  # PyYAML is a runtime dependency declared in pyproject.toml
    import yaml
except Exception as exc:  # pragma: no cover - import failure handled in tests
    raise RuntimeError(
        "PyYAML is required to manage the recordctl catalog. "
        "Install with `pip install recordctl`."
    ) from exc

from .fields import TYPE_NAME_PATTERN

if TYPE_CHECKING:
    from .generator import GenerationResult, RecordGenerator


class CatalogError(RuntimeError):
    """Raised when catalog operations fail."""


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """A stored type definition."""

    name: str
    fields: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable representation."""
        return {"name": self.name, "fields": list(self.fields)}


@dataclass(frozen=True)
class TypeCatalog:
    """High-level interface to the YAML type catalog."""

    path: Path

    def __post_init__(self) -> None:
        """Normalise the catalog path after initialisation."""
        object.__setattr__(self, "path", Path(self.path).expanduser())

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------
    def list_entries(self) -> list[CatalogEntry]:
        """Return stored definitions in file order."""
        raw = self._read()
        entries: list[CatalogEntry] = []
        raw_types = raw.get("types", [])
        if not isinstance(raw_types, list):
            raise CatalogError(f"Catalog {self.path} must hold a list under 'types'.")
        for index, item in enumerate(raw_types):
            entries.append(_normalize_entry(item, f"types[{index}]"))
        return entries

    def get(self, name: str) -> CatalogEntry | None:
        """Return the definition stored for *name*, if any."""
        normalized = _normalize_name(name)
        for entry in self.list_entries():
            if entry.name == normalized:
                return entry
        return None

    def upsert(self, name: str, fields: Sequence[str]) -> CatalogEntry:
        """Add or replace the definition for *name*."""
        entry = CatalogEntry(name=_normalize_name(name), fields=tuple(str(f) for f in fields))
        entries = self.list_entries()
        replaced = False
        for index, existing in enumerate(entries):
            if existing.name == entry.name:
                entries[index] = entry
                replaced = True
        if not replaced:
            entries.append(entry)
        self._write(entries)
        return entry

    def remove(self, name: str) -> None:
        """Remove the definition for *name*."""
        normalized = _normalize_name(name)
        entries = self.list_entries()
        filtered = [entry for entry in entries if entry.name != normalized]
        if len(filtered) == len(entries):
            raise CatalogError(f"Type '{normalized}' not found in catalog")
        self._write(filtered)

    def load_into(self, generator: RecordGenerator) -> list[GenerationResult]:
        """Regenerate every stored definition through *generator*."""
        return [
            generator.generate(entry.name, entry.fields, validate=False)
            for entry in self.list_entries()
        ]

    # Internal helpers -------------------------------------------------
    def _read(self) -> Mapping[str, object]:
        if not self.path.exists():
            return {"types": []}
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
            raise CatalogError(f"Failed to parse catalog file {self.path}: {exc}") from exc
        if data is None:
            return {"types": []}
        if not isinstance(data, Mapping):
            raise CatalogError(f"Catalog {self.path} must contain a mapping at the top level.")
        return data

    def _write(self, entries: Sequence[CatalogEntry]) -> None:
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        payload = {"types": [entry.to_dict() for entry in entries]}

        tmp_fd, tmp_name = tempfile.mkstemp(dir=str(directory), prefix=f".{self.path.name}.")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                yaml.safe_dump(payload, handle, sort_keys=False)
            os.replace(tmp_path, self.path)
            os.chmod(self.path, 0o640)
        finally:
            tmp_path.unlink(missing_ok=True)


def _normalize_name(name: str) -> str:
    normalized = name.strip()
    if not TYPE_NAME_PATTERN.fullmatch(normalized):
        raise CatalogError(f"Type name {name!r} must be non-empty and alphanumeric.")
    return normalized


def _normalize_entry(item: object, label: str) -> CatalogEntry:
    if not isinstance(item, Mapping):
        raise CatalogError(f"Catalog entry {label} must be a mapping.")
    name = _normalize_name(str(item.get("name", "")))
    raw_fields = item.get("fields") or []
    if isinstance(raw_fields, str) or not isinstance(raw_fields, list):
        raise CatalogError(f"Catalog entry {label} 'fields' must be a list of strings.")
    return CatalogEntry(name=name, fields=tuple(str(value) for value in raw_fields))


__all__ = ["CatalogEntry", "CatalogError", "TypeCatalog"]
