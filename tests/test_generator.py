"""Tests for the record-constructor generator."""
from __future__ import annotations

import inspect
import io

import pytest
from rich.console import Console

from recordctl import generator as generator_module
from recordctl.coercion import RecordBindingError
from recordctl.fields import ConstructionFailure, InvalidFieldSpec, InvalidTypeName
from recordctl.generator import (
    GenerationResult,
    RecordGenerator,
    generate_constructor,
    render_source,
)
from recordctl.registry import ConstructorRegistry


def _output(console: Console) -> str:
    assert isinstance(console.file, io.StringIO)
    return console.file.getvalue()


def _exec_source(source: str, name: str) -> object:
    namespace: dict[str, object] = {}
    exec(compile(source, f"<{name}>", "exec"), namespace)  # noqa: S102 - inspecting rendered source
    return namespace[name]


def test_widget_constructor_builds_ordered_record(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
) -> None:
    """A well-formed request registers ``new_Widget`` building ordered records."""
    result = generator.generate("Widget", ["[string]Code", "Name"])

    assert result.generated is True
    assert result.name == "new_Widget"
    assert result.error is None
    assert "new_Widget" in registry

    record = registry.invoke("new_Widget", "W1", "Gadget")
    assert record == {"Code": "W1", "Name": "Gadget"}
    assert list(record) == ["Code", "Name"]


def test_constructor_accepts_keywords_and_defaults_to_none(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
) -> None:
    """Fields may be bound by name; unsupplied fields are ``None``."""
    generator.generate("Widget", ["[string]Code", "Name", "[bool]isEnabled"])

    record = registry.invoke("new_Widget", Name="Gadget")
    assert record == {"Code": None, "Name": "Gadget", "isEnabled": None}
    assert list(record) == ["Code", "Name", "isEnabled"]


def test_constructor_enforces_declared_types(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
) -> None:
    """Typed fields convert their arguments and reject incompatible values."""
    generator.generate("Order", ["[int]Quantity", "[string[]]Links", "[string]Code"])
    constructor = registry.get("new_Order")

    assert constructor("3", "http://a", 17) == {
        "Quantity": 3,
        "Links": ["http://a"],
        "Code": "17",
    }
    with pytest.raises(RecordBindingError):
        constructor("three")


def test_constructor_rejects_surplus_or_unknown_arguments(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
) -> None:
    """Argument binding follows Python call semantics."""
    generator.generate("Widget", ["Code"])
    constructor = registry.get("new_Widget")

    with pytest.raises(TypeError):
        constructor("a", "b")
    with pytest.raises(TypeError):
        constructor(Missing="x")
    with pytest.raises(TypeError):
        constructor("a", Code="b")


def test_constructor_exposes_signature(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
) -> None:
    """The constructor advertises one parameter per field, in order."""
    generator.generate("Widget", ["[string]Code", "Name"])
    signature = inspect.signature(registry.get("new_Widget"))

    assert list(signature.parameters) == ["Code", "Name"]
    assert signature.parameters["Code"].annotation == "string"
    assert signature.parameters["Name"].default is None


@pytest.mark.parametrize("type_name", ["Bad Name", "", "Bad-Name", "Bad_Name"])
def test_invalid_type_name_fails_without_registration(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
    type_name: str,
) -> None:
    """Non-alphanumeric type names fail and register nothing."""
    result = generator.generate(type_name, ["Code"])

    assert not result
    assert isinstance(result.error, InvalidTypeName)
    assert len(registry) == 0


@pytest.mark.parametrize("char", [":", "$", ";", "\\", "'", "/"])
def test_forbidden_characters_fail_without_registration(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
    char: str,
) -> None:
    """Forbidden characters anywhere in the field specs reject the request."""
    result = generator.generate("Widget", ["[string]Code", f"Na{char}me"])

    assert not result
    assert isinstance(result.error, InvalidFieldSpec)
    assert len(registry) == 0


@pytest.mark.parametrize(
    "fields",
    [
        ["[Widget]Code"],
        ["[string]"],
        ["[stringCode"],
        ["Code", "Code"],
        ["[int]class"],
        ["two words"],
        ["_record"],
        ["\N{LATIN SMALL LIGATURE FI}eld", "field"],
        ["\N{FULLWIDTH LATIN SMALL LETTER I}\N{FULLWIDTH LATIN SMALL LETTER F}"],
    ],
)
def test_construction_failures_are_reported(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
    fields: list[str],
) -> None:
    """Fields that cannot form a constructor fail with ``ConstructionFailure``."""
    result = generator.generate("Widget", fields)

    assert not result
    assert isinstance(result.error, ConstructionFailure)
    assert "new_Widget" not in registry


def test_unexpected_registration_errors_become_construction_failures(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Internal errors never escape the generator boundary."""

    def explode(constructor: object) -> None:  # noqa: ARG001 - signature matches
        raise RuntimeError("registry offline")

    monkeypatch.setattr(registry, "register", explode)

    result = generator.generate("Widget", ["Code"])

    assert not result
    assert isinstance(result.error, ConstructionFailure)
    assert "registry offline" in str(result.error)


def test_diagnostics_only_when_validate_requested(
    generator: RecordGenerator,
    console: Console,
) -> None:
    """Rejections print a diagnostic only when ``validate`` is true."""
    generator.generate("Bad Name", ["Code"], validate=False)
    assert _output(console) == ""

    generator.generate("Bad Name", ["Code"], validate=True)
    output = _output(console)
    assert "Rejected" in output
    assert "Bad Name" in output
    assert "invalid type name" in output


def test_success_diagnostic_when_validating(
    generator: RecordGenerator,
    console: Console,
) -> None:
    """A successful generation reports the constructor when validating."""
    generator.generate("Widget", ["[string]Code", "Name"], validate=True)

    assert "Generated new_Widget(Code, Name)" in _output(console)


def test_diagnostic_escapes_bracketed_declarations(
    generator: RecordGenerator,
    console: Console,
) -> None:
    """Declarations containing brackets are printed literally."""
    generator.generate("Widget", ["[stringCode"], validate=True)

    assert "[stringCode" in _output(console)


def test_generating_twice_overwrites_with_identical_behaviour(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
) -> None:
    """Repeat generation succeeds and replaces the previous constructor."""
    first = generator.generate("Widget", ["[string]Code", "Name"])
    constructor_one = registry.get("new_Widget")
    second = generator.generate("Widget", ["[string]Code", "Name"])
    constructor_two = registry.get("new_Widget")

    assert first and second
    assert first.source_text == second.source_text
    assert constructor_one is not constructor_two
    assert registry.names() == ["new_Widget"]
    assert constructor_one("W1", "Gadget") == constructor_two("W1", "Gadget")


def test_source_text_round_trips(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
) -> None:
    """Executing the returned source yields an equivalent function."""
    result = generator.generate("Order", ["[int]Quantity", "[string[]]Links", "Note"])
    assert result.source_text is not None

    compiled = _exec_source(result.source_text, "new_Order")
    registered = registry.get("new_Order")

    for args, kwargs in [
        (("2", ["a", "b"], "fragile"), {}),
        ((), {"Note": "only"}),
        ((5,), {"Links": "single"}),
    ]:
        assert compiled(*args, **kwargs) == registered(*args, **kwargs)  # type: ignore[operator]

    with pytest.raises(RecordBindingError):
        compiled("many")  # type: ignore[operator]


@pytest.mark.parametrize("count", [0, 1, 5, 40])
def test_record_keys_follow_declaration_order(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
    count: int,
) -> None:
    """N declarations produce exactly N keys in input order."""
    names = [f"Field{index}" for index in reversed(range(count))]
    result = generator.generate("Wide", names)

    assert result
    record = registry.invoke("new_Wide", *range(count))
    assert list(record) == names
    assert list(record.values()) == list(range(count))


def test_custom_prefix_names_constructor(registry: ConstructorRegistry) -> None:
    """The constructor name is the configured prefix plus the type name."""
    generator = RecordGenerator(registry, prefix="make")
    result = generator.generate("Widget", ["Code"])

    assert result.name == "makeWidget"
    assert generator.constructor_name("Widget") == "makeWidget"
    assert "makeWidget" in registry


def test_generate_constructor_function(registry: ConstructorRegistry) -> None:
    """The module-level helper generates into the supplied registry."""
    result = generate_constructor(registry, "Widget", ["[string]Code", "Name"])

    assert isinstance(result, GenerationResult)
    assert result.to_dict()["name"] == "new_Widget"
    assert registry.invoke("new_Widget", "W1", "Gadget") == {"Code": "W1", "Name": "Gadget"}


def test_failed_result_serialises_error(generator: RecordGenerator) -> None:
    """Failures serialise their error kind and message."""
    payload = generator.generate("Bad Name", []).to_dict()

    assert payload["generated"] is False
    assert payload["error"]["kind"] == "invalid_type_name"  # type: ignore[index]


def test_build_does_not_register(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
) -> None:
    """``build`` returns the constructor and source without registering them."""
    constructor, source = generator.build("Widget", ["Code"])

    assert constructor.name == "new_Widget"
    assert "def new_Widget(Code=None):" in source
    assert len(registry) == 0

    with pytest.raises(InvalidTypeName):
        generator.build("Bad Name", [])


def test_render_source_for_empty_record(generator: RecordGenerator) -> None:
    """A type with no fields renders a zero-argument function."""
    constructor, _ = generator.build("Empty", [])
    source = render_source("new_Empty", constructor.descriptor)

    assert "def new_Empty():" in source
    assert _exec_source(source, "new_Empty")() == {}  # type: ignore[operator]


def test_field_names_are_nfkc_normalized(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
) -> None:
    """Compatibility characters in names resolve to the identifier Python sees."""
    result = generator.generate("Widget", ["[string]\N{LATIN SMALL LIGATURE FI}le", "Name"])

    assert result
    assert registry.invoke("new_Widget", file=7, Name="n") == {"file": "7", "Name": "n"}
    rendered = _exec_source(result.source_text or "", "new_Widget")
    assert rendered("a", "b") == {"file": "a", "Name": "b"}


def test_uncompilable_source_is_a_construction_failure(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Rendered source that does not compile is rejected before registration."""
    monkeypatch.setattr(generator_module, "render_source", lambda name, descriptor: "def (:\n")

    result = generator.generate("Widget", ["Code"])

    assert not result
    assert isinstance(result.error, ConstructionFailure)
    assert "new_Widget" not in registry


@pytest.mark.parametrize(
    "declaration",
    [
        "[System.String]Code",
        "[pscustomobject]Meta",
        "[guid]Id",
        "[array]Items",
        "[char]Initial",
        "[System.Int32[]]Counts",
    ],
)
def test_common_annotations_generate(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
    declaration: str,
) -> None:
    """Qualified and shorthand type annotations are accepted at generation time."""
    result = generator.generate("Widget", [declaration])

    assert result, result.error
    assert "new_Widget" in registry
    _exec_source(result.source_text or "", "new_Widget")


def test_bare_string_field_specs_fail_without_registration(
    generator: RecordGenerator,
    registry: ConstructorRegistry,
) -> None:
    """Passing one string instead of a list is rejected as a field-spec error."""
    result = generator.generate("Widget", "Name")  # type: ignore[arg-type]

    assert not result
    assert isinstance(result.error, InvalidFieldSpec)
    assert len(registry) == 0
