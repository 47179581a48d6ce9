"""Record-constructor generator.

:class:`RecordGenerator` turns a type name and an ordered list of field
declarations into a :class:`RecordConstructor` and registers it, under a
deterministic name (prefix + type name), in a caller-owned
:class:`~recordctl.registry.ConstructorRegistry`.

No text is evaluated to build a constructor: the parsed fields become a
:class:`RecordDescriptor` and one generic constructor interprets it. Python
source for an equivalent function is still rendered and returned so callers
can inspect it, or execute it on their own to obtain the same behaviour.

Generation never raises for bad input. Every failure is reported through a
falsy :class:`GenerationResult` and, when ``validate`` is requested, a
diagnostic printed to the console.
"""
from __future__ import annotations

import inspect
import keyword
import unicodedata
from collections.abc import Sequence
from dataclasses import dataclass

from rich.console import Console
from rich.markup import escape

from .coercion import Converter, UnknownFieldType, resolve_converter
from .fields import (
    ConstructionFailure,
    GeneratorError,
    ParsedField,
    parse_field_specs,
    validate_field_specs,
    validate_type_name,
)
from .registry import ConstructorRegistry

DEFAULT_PREFIX = "new_"

# Local names used by rendered source; field names may not shadow them.
RESERVED_NAMES = frozenset({"_record", "_coerce"})


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """A named, optionally typed record field."""

    name: str
    type_name: str = ""

    @property
    def declaration(self) -> str:
        """Return the field rendered back as a declaration string."""
        return f"[{self.type_name}]{self.name}" if self.type_name else self.name

    def to_dict(self) -> dict[str, str]:
        """Return a serialisable representation."""
        return {"name": self.name, "type": self.type_name}


@dataclass(frozen=True, slots=True)
class RecordDescriptor:
    """Typed description of a record: its type name and ordered fields."""

    type_name: str
    fields: tuple[FieldDescriptor, ...] = ()

    @property
    def field_names(self) -> list[str]:
        """Return field names in declaration order."""
        return [item.name for item in self.fields]

    def declarations(self) -> list[str]:
        """Return the fields as declaration strings."""
        return [item.declaration for item in self.fields]

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "type_name": self.type_name,
            "fields": [item.to_dict() for item in self.fields],
        }


class RecordConstructor:
    """Callable that builds ordered records for a :class:`RecordDescriptor`.

    Arguments are bound with the constructor's :class:`inspect.Signature`; every
    field is a positional-or-keyword parameter defaulting to ``None``. Typed
    fields convert their argument on the way in and raise
    :class:`~recordctl.coercion.RecordBindingError` when they cannot.
    """

    def __init__(self, name: str, descriptor: RecordDescriptor) -> None:
        """Prepare converters and the call signature for *descriptor*."""
        self.__name__ = name
        self.__qualname__ = name
        self.descriptor = descriptor
        self._bindings: list[tuple[str, Converter | None]] = [
            (item.name, resolve_converter(item.type_name)) for item in descriptor.fields
        ]
        self.__signature__ = inspect.Signature(
            [
                inspect.Parameter(
                    item.name,
                    inspect.Parameter.POSITIONAL_OR_KEYWORD,
                    default=None,
                    annotation=item.type_name or inspect.Parameter.empty,
                )
                for item in descriptor.fields
            ]
        )

    @property
    def name(self) -> str:
        """Return the registered name of this constructor."""
        return self.__name__

    def __call__(self, *args: object, **kwargs: object) -> dict[str, object]:
        """Bind the arguments and return the record in field order."""
        bound = self.__signature__.bind(*args, **kwargs)
        record: dict[str, object] = {}
        for name, converter in self._bindings:
            value = bound.arguments.get(name)
            if converter is not None and value is not None:
                value = converter(value)
            record[name] = value
        return record

    def __repr__(self) -> str:
        return f"<RecordConstructor {self.__name__}{self.__signature__}>"


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Outcome of a generation request; truthy only on success."""

    generated: bool
    name: str | None = None
    source_text: str | None = None
    error: GeneratorError | None = None

    def __bool__(self) -> bool:
        return self.generated

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        payload: dict[str, object] = {"generated": self.generated, "name": self.name}
        if self.generated:
            payload["source"] = self.source_text
        elif self.error is not None:
            payload["error"] = {"kind": self.error.kind, "message": str(self.error)}
        return payload


def build_descriptor(type_name: str, parsed: Sequence[ParsedField]) -> RecordDescriptor:
    """Turn parsed fields into a :class:`RecordDescriptor`, checking each field."""
    fields: list[FieldDescriptor] = []
    seen: set[str] = set()
    for item in parsed:
        # Python compares identifiers after NFKC normalization.
        name = unicodedata.normalize("NFKC", item.field_name)
        if not name:
            raise ConstructionFailure(f"Field declaration {item.field_type!r} has no field name.")
        if not name.isidentifier() or keyword.iskeyword(name):
            raise ConstructionFailure(f"Field name {name!r} is not a valid parameter name.")
        if name in RESERVED_NAMES:
            raise ConstructionFailure(f"Field name {name!r} is reserved.")
        if name in seen:
            raise ConstructionFailure(f"Field {name!r} is declared more than once.")
        try:
            resolve_converter(item.type_name)
        except UnknownFieldType as exc:
            raise ConstructionFailure(f"Field {name!r}: {exc}") from exc
        seen.add(name)
        fields.append(FieldDescriptor(name=name, type_name=item.type_name))
    return RecordDescriptor(type_name=type_name, fields=tuple(fields))


def render_source(name: str, descriptor: RecordDescriptor) -> str:
    """Render Python source defining a function equivalent to the constructor."""
    parameters = ", ".join(
        f"{item.name}: {item.type_name!r} = None" if item.type_name else f"{item.name}=None"
        for item in descriptor.fields
    )
    lines = [
        "from recordctl.coercion import coerce as _coerce",
        "",
        "",
        f"def {name}({parameters}):",
        f'    """Build a {descriptor.type_name} record."""',
        "    _record = {}",
    ]
    for item in descriptor.fields:
        if item.type_name:
            value = f"_coerce({item.type_name!r}, {item.name})"
        else:
            value = item.name
        lines.append(f"    _record[{item.name!r}] = {value}")
    lines.append("    return _record")
    return "\n".join(lines) + "\n"


class RecordGenerator:
    """Generate record constructors into a :class:`ConstructorRegistry`.

    The registry performs no locking. Two callers generating the same type
    concurrently race, and whichever registers last wins.
    """

    def __init__(
        self,
        registry: ConstructorRegistry,
        *,
        prefix: str = DEFAULT_PREFIX,
        console: Console | None = None,
    ) -> None:
        """Bind the generator to *registry* and its naming *prefix*."""
        self.registry = registry
        self.prefix = prefix
        self.console = console or Console()

    def constructor_name(self, type_name: str) -> str:
        """Return the deterministic constructor name for *type_name*."""
        return f"{self.prefix}{type_name}"

    def build(
        self,
        type_name: str,
        field_specs: Sequence[str],
    ) -> tuple[RecordConstructor, str]:
        """Validate, parse and build a constructor without registering it.

        Raises :class:`~recordctl.fields.GeneratorError` subclasses on failure.
        """
        validate_type_name(type_name)
        specs = validate_field_specs(field_specs)
        try:
            descriptor = build_descriptor(type_name, parse_field_specs(specs))
            name = self.constructor_name(type_name)
            source = render_source(name, descriptor)
            compile(source, "<recordctl>", "exec")
            return RecordConstructor(name, descriptor), source
        except GeneratorError:
            raise
        except Exception as exc:
            raise ConstructionFailure(f"Failed to build constructor for {type_name}: {exc}") from exc

    def generate(
        self,
        type_name: str,
        field_specs: Sequence[str],
        *,
        validate: bool = False,
    ) -> GenerationResult:
        """Build and register a constructor; see :class:`GenerationResult`."""
        try:
            constructor, source = self.build(type_name, field_specs)
            self.registry.register(constructor)
        except GeneratorError as exc:
            if validate:
                self._report_failure(type_name, exc)
            return GenerationResult(generated=False, error=exc)
        except Exception as exc:
            failure = ConstructionFailure(f"Failed to register constructor for {type_name}: {exc}")
            if validate:
                self._report_failure(type_name, failure)
            return GenerationResult(generated=False, error=failure)

        if validate:
            self.console.print(
                f"[green]Generated[/green] {constructor.name}"
                f"({', '.join(constructor.descriptor.field_names)})"
            )
        return GenerationResult(generated=True, name=constructor.name, source_text=source)

    def _report_failure(self, type_name: str, error: GeneratorError) -> None:
        label = error.kind.replace("_", " ")
        self.console.print(
            f"[red]Rejected[/red] {escape(repr(type_name))}: "
            f"[yellow]{label}[/yellow] - {escape(str(error))}",
            highlight=False,
        )


def generate_constructor(
    registry: ConstructorRegistry,
    type_name: str,
    field_specs: Sequence[str],
    validate: bool = False,
    *,
    prefix: str = DEFAULT_PREFIX,
    console: Console | None = None,
) -> GenerationResult:
    """Generate a constructor for *type_name* into *registry*."""
    generator = RecordGenerator(registry, prefix=prefix, console=console)
    return generator.generate(type_name, field_specs, validate=validate)


__all__ = [
    "DEFAULT_PREFIX",
    "FieldDescriptor",
    "GenerationResult",
    "RecordConstructor",
    "RecordDescriptor",
    "RecordGenerator",
    "build_descriptor",
    "generate_constructor",
    "render_source",
]
