"""Typer-powered command line for ``recordctl``.

Commands generate record constructors from field declarations, persist the
declarations to the type catalog, and build records from catalogued types.
Every command runs inside a structured logging operation.
"""
from __future__ import annotations

import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .catalog import CatalogError, TypeCatalog
from .coercion import RecordBindingError
from .config import AppConfig, ConfigError, load_config
from .exit_codes import ExitCode
from .fields import ConstructionFailure, GeneratorError
from .generator import RecordGenerator
from .logging import OperationScope, StructuredLogger
from .registry import ConstructorRegistry

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to recordctl's YAML config file.",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit machine-readable JSON instead of rich output.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Record constructor generator.

        Define record types from field declarations (an optional bracketed type
        followed by a field name), keep them in a type catalog, and build ordered
        records from them.
        """
    ).strip(),
)
types_app = typer.Typer(help="Inspect and manage catalogued record types.")
config_app = typer.Typer(help="Inspect the effective configuration.")
app.add_typer(types_app, name="types")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    catalog: TypeCatalog
    registry: ConstructorRegistry
    generator: RecordGenerator
    logger: StructuredLogger


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=ExitCode.CATALOG) from exc

    registry = ConstructorRegistry()
    runtime = RuntimeContext(
        config=config,
        catalog=TypeCatalog(config.catalog_file),
        registry=registry,
        generator=RecordGenerator(registry, prefix=config.generator.prefix, console=console),
        logger=StructuredLogger(config.logs_dir),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the recordctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    runtime = _ensure_runtime(ctx, config_file)

    if version:
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"recordctl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=ExitCode.OK)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help(), markup=False)
        raise typer.Exit(code=ExitCode.OK)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{escape(message)}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _exit_code_for(error: GeneratorError | None) -> ExitCode:
    if isinstance(error, ConstructionFailure):
        return ExitCode.CONSTRUCTION
    return ExitCode.VALIDATION


def _parse_assignments(op: OperationScope, raw: Sequence[str]) -> dict[str, object]:
    """Turn ``NAME=VALUE`` strings into keyword arguments."""
    assignments: dict[str, object] = {}
    for item in raw:
        name, separator, value = item.partition("=")
        name = name.strip()
        if not separator or not name:
            _command_error(op, f"Invalid assignment '{item}'. Expected NAME=VALUE.")
        assignments[name] = value
    return assignments


@app.command()
def generate(
    ctx: typer.Context,
    type_name: str = typer.Argument(..., help="Alphanumeric record type name."),
    fields: list[str] | None = typer.Argument(
        None,
        help="Field declarations: an optional bracketed type followed by a name.",
    ),
    save: bool = typer.Option(
        False,
        "--save",
        help="Store the type definition in the catalog after a successful generation.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress generator diagnostics.",
    ),
    json_output: bool = JSON_OPTION,
) -> None:
    """Generate a record constructor and print its source."""
    runtime = _get_runtime(ctx)
    field_specs = list(fields or [])
    validate = runtime.config.generator.validate and not quiet and not json_output

    with runtime.logger.operation(
        "generate",
        args={"type_name": type_name, "fields": field_specs, "save": save, "json": json_output},
        target={"kind": "type", "name": type_name},
    ) as op:
        result = runtime.generator.generate(type_name, field_specs, validate=validate)
        if not result:
            rc = _exit_code_for(result.error)
            message = str(result.error) if result.error else "Generation failed."
            if json_output:
                console.print_json(data=result.to_dict())
            op.error(message, rc=int(rc), context=result.to_dict())
            raise typer.Exit(code=int(rc))

        changed = 0
        if save:
            try:
                runtime.catalog.upsert(type_name, field_specs)
            except (CatalogError, OSError) as exc:
                _command_error(op, f"Failed to save '{type_name}': {exc}", rc=ExitCode.CATALOG)
            changed = 1

        if json_output:
            payload = result.to_dict()
            payload["saved"] = save
            console.print_json(data=payload)
        else:
            console.print(result.source_text, markup=False, highlight=False, soft_wrap=True)
            if save:
                console.print(f"[green]Saved[/green] {type_name} to {runtime.catalog.path}")
        op.success(f"Generated {result.name}.", changed=changed, context={"name": result.name})


@app.command()
def new(
    ctx: typer.Context,
    type_name: str = typer.Argument(..., help="Catalogued record type to build."),
    values: list[str] | None = typer.Argument(
        None,
        help="Positional field values in declaration order.",
    ),
    assignments: list[str] | None = typer.Option(
        None,
        "--set",
        help="Assign a field by name (NAME=VALUE). May be repeated.",
    ),
) -> None:
    """Build a record from a catalogued type and print it as JSON."""
    runtime = _get_runtime(ctx)
    positional = list(values or [])

    with runtime.logger.operation(
        "new",
        args={"type_name": type_name, "values": positional, "set": list(assignments or [])},
        target={"kind": "record", "type": type_name},
    ) as op:
        keywords = _parse_assignments(op, assignments or [])
        try:
            entry = runtime.catalog.get(type_name)
        except CatalogError as exc:
            _command_error(op, str(exc), rc=ExitCode.CATALOG)
        if entry is None:
            _command_error(op, f"Type '{type_name}' not found in catalog.", rc=ExitCode.CATALOG)

        result = runtime.generator.generate(entry.name, entry.fields, validate=False)
        if not result or result.name is None:
            message = str(result.error) if result.error else "Generation failed."
            _command_error(op, message, rc=_exit_code_for(result.error))

        try:
            record = runtime.registry.invoke(result.name, *positional, **keywords)
        except RecordBindingError as exc:
            _command_error(op, f"Cannot build {type_name}: {exc}")
        except TypeError as exc:
            _command_error(op, f"Invalid arguments for {result.name}: {exc}")

        console.print_json(data=record, default=str)
        op.success(f"Built {type_name} record.", changed=0, context={"fields": len(record)})


@types_app.command("list")
def types_list(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """List catalogued record types."""
    runtime = _get_runtime(ctx)

    with runtime.logger.operation(
        "types list",
        args={"json": json_output},
        target={"kind": "catalog"},
    ) as op:
        try:
            entries = runtime.catalog.list_entries()
        except CatalogError as exc:
            _command_error(op, str(exc), rc=ExitCode.CATALOG)

        if json_output:
            console.print_json(data={"types": [entry.to_dict() for entry in entries]})
            op.success("Reported catalogued types as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Type", style="bold")
        table.add_column("Constructor")
        table.add_column("Fields")

        if not entries:
            table.add_row("(none)", "", "")
        else:
            for entry in entries:
                table.add_row(
                    entry.name,
                    runtime.generator.constructor_name(entry.name),
                    escape(", ".join(entry.fields)),
                )

        console.print(table)
        op.success("Reported catalogued types.", changed=0)


@types_app.command("show")
def types_show(
    ctx: typer.Context,
    type_name: str = typer.Argument(..., help="Catalogued record type to display."),
    json_output: bool = JSON_OPTION,
) -> None:
    """Show the fields and generated source of a catalogued type."""
    runtime = _get_runtime(ctx)

    with runtime.logger.operation(
        "types show",
        args={"type_name": type_name, "json": json_output},
        target={"kind": "type", "name": type_name},
    ) as op:
        try:
            entry = runtime.catalog.get(type_name)
        except CatalogError as exc:
            _command_error(op, str(exc), rc=ExitCode.CATALOG)
        if entry is None:
            _command_error(op, f"Type '{type_name}' not found in catalog.", rc=ExitCode.CATALOG)

        try:
            constructor, source = runtime.generator.build(entry.name, entry.fields)
        except GeneratorError as exc:
            _command_error(op, str(exc), rc=_exit_code_for(exc))

        if json_output:
            payload = {
                "name": constructor.name,
                "descriptor": constructor.descriptor.to_dict(),
                "source": source,
            }
            console.print_json(data=payload)
            op.success("Reported type as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta", title=constructor.name)
        table.add_column("#", justify="right")
        table.add_column("Field", style="bold")
        table.add_column("Type")
        for index, item in enumerate(constructor.descriptor.fields, start=1):
            table.add_row(str(index), item.name, escape(item.type_name) or "(any)")
        console.print(table)
        console.print(source, markup=False, highlight=False, soft_wrap=True)
        op.success("Reported type.", changed=0)


@types_app.command("remove")
def types_remove(
    ctx: typer.Context,
    type_name: str = typer.Argument(..., help="Catalogued record type to remove."),
) -> None:
    """Remove a type definition from the catalog."""
    runtime = _get_runtime(ctx)

    with runtime.logger.operation(
        "types remove",
        args={"type_name": type_name},
        target={"kind": "type", "name": type_name},
    ) as op:
        try:
            runtime.catalog.remove(type_name)
        except (CatalogError, OSError) as exc:
            _command_error(op, str(exc), rc=ExitCode.CATALOG)
        console.print(f"[green]Removed[/green] {type_name} from {runtime.catalog.path}")
        op.success(f"Removed {type_name}.", changed=1)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = ", ".join(f"{name}={item}" for name, item in value.items())
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


__all__ = ["app"]
