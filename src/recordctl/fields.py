"""Field declaration parsing and request validation.

A field declaration is a string such as ``"[string]AppCode"``,
``"[string[]]Links"`` or a bare ``"isEnabled"``. The optional bracketed prefix
is the field's type annotation; the remainder is the field name.
"""
from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

TYPE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9]+$")
FORBIDDEN_CHARACTERS = frozenset(":$;\\'/")


class GeneratorError(RuntimeError):
    """Base class for record-generator failures."""

    kind = "generator"


class InvalidTypeName(GeneratorError):
    """Raised when a type name is empty or not purely alphanumeric."""

    kind = "invalid_type_name"


class InvalidFieldSpec(GeneratorError):
    """Raised when the joined field declarations contain forbidden characters."""

    kind = "invalid_field_spec"


class ConstructionFailure(GeneratorError):
    """Raised when a constructor cannot be built from the parsed fields."""

    kind = "construction_failure"


@dataclass(frozen=True, slots=True)
class ParsedField:
    """A field declaration split into its annotation and name."""

    field_type: str
    field_name: str

    @property
    def type_name(self) -> str:
        """Return the annotation without its outer brackets (``""`` when untyped)."""
        annotation = self.field_type
        if annotation.startswith("[") and annotation.endswith("]"):
            return annotation[1:-1].strip()
        return annotation.strip()


def validate_type_name(type_name: str) -> str:
    """Return *type_name* when it is a non-empty alphanumeric identifier."""
    if not isinstance(type_name, str) or not TYPE_NAME_PATTERN.fullmatch(type_name):
        raise InvalidTypeName(
            f"Type name {type_name!r} must be non-empty and contain only letters and digits."
        )
    return type_name


def validate_field_specs(field_specs: Sequence[str]) -> list[str]:
    """Reject the request when the joined declarations contain forbidden characters."""
    if isinstance(field_specs, str):
        raise InvalidFieldSpec(
            f"Field declarations must be a sequence of strings, not the string {field_specs!r}."
        )
    specs = [str(spec) for spec in field_specs]
    joined = " ".join(specs)
    found = sorted({char for char in joined if char in FORBIDDEN_CHARACTERS})
    if found:
        listed = " ".join(found)
        raise InvalidFieldSpec(f"Field declarations contain forbidden characters: {listed}")
    return specs


def parse_field_spec(spec: str) -> ParsedField:
    """Split one declaration into a :class:`ParsedField`.

    ``]]`` is tried before ``]`` so that nested annotations such as
    ``[string[]]`` keep their inner brackets. A declaration without ``[`` is an
    untyped field named by the whole string.
    """
    if "]]" in spec:
        annotation, name = spec.split("]]", 1)
        return ParsedField(field_type=annotation + "]]", field_name=name.strip())
    if "[" in spec:
        annotation, separator, name = spec.partition("]")
        if not separator:
            raise ConstructionFailure(f"Field declaration {spec!r} has an unterminated type.")
        return ParsedField(field_type=annotation + "]", field_name=name.strip())
    return ParsedField(field_type="", field_name=spec.strip())


def parse_field_specs(field_specs: Sequence[str]) -> list[ParsedField]:
    """Parse every declaration, preserving order."""
    return [parse_field_spec(spec) for spec in field_specs]


__all__ = [
    "FORBIDDEN_CHARACTERS",
    "TYPE_NAME_PATTERN",
    "ConstructionFailure",
    "GeneratorError",
    "InvalidFieldSpec",
    "InvalidTypeName",
    "ParsedField",
    "parse_field_spec",
    "parse_field_specs",
    "validate_field_specs",
    "validate_type_name",
]
