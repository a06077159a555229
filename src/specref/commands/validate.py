"""Key-check command -- report missing and unexpected keys of a mapping.

Findings are warnings, not failures: the command prints them and exits 0
so that it can run in pipelines that only want the report.
"""

from __future__ import annotations

from typing import Optional

import typer

from specref.commands import open_resolver
from specref.exceptions import InvalidUsageError
from specref.output import OutputFormat, error, get_output, success, warning
from specref.tree import keys_of, plural_properties, string_list, unpack_map, value_for
from specref.validation import check_keys


def check_keys_command(
    ctx: typer.Context,
    locator: str = typer.Argument(help="Path or URL of the document."),
    ref: Optional[str] = typer.Option(
        None, "--ref", "-r", help="Reference of the mapping to check."
    ),
    schema: Optional[str] = typer.Option(
        None,
        "--schema",
        "-s",
        help="Reference of a schema object whose 'required' and 'properties' "
        "supply required and allowed keys.",
    ),
    require: Optional[list[str]] = typer.Option(
        None, "--require", help="Key that must be present (repeatable)."
    ),
    allow: Optional[list[str]] = typer.Option(
        None, "--allow", help="Key name that is allowed (repeatable)."
    ),
    pattern: Optional[list[str]] = typer.Option(
        None, "--pattern", help="Regular expression for allowed keys (repeatable)."
    ),
) -> None:
    """Check a mapping's keys against required and allowed sets.

    With neither --allow, --pattern nor --schema, only required keys are
    checked.

    Example::

        specref check-keys spec/root.yaml --ref '#/info' \\
            --require title --require version \\
            --allow title --allow version --allow description --pattern '^x-'
        specref check-keys spec/api.yaml --ref '#/examples/widget' \\
            --schema '#/definitions/Widget'
    """
    required = list(require or [])
    allowed = list(allow or [])
    patterns = list(pattern or [])

    with open_resolver(ctx) as resolver:
        node = resolver.resolve(locator, ref or "")
        schema_node = resolver.resolve(locator, schema) if schema else None

    if schema:
        required.extend(string_list(value_for(schema_node, "required")))
        allowed.extend(keys_of(value_for(schema_node, "properties")))

    mapping, is_map = unpack_map(node)
    if not is_map:
        warning(f"{ref or locator} is not a mapping; its keys cannot be checked")

    try:
        report = check_keys(
            node,
            required=required,
            allowed=allowed,
            patterns=patterns,
            check_invalid=bool(allowed or patterns),
        )
    except InvalidUsageError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    output = get_output()
    if output.format == OutputFormat.JSON:
        output.print_data(report.model_dump_json(indent=2))
    else:
        rows = [[key, "missing"] for key in report.missing]
        rows.extend([key, "not allowed"] for key in report.invalid)
        if rows:
            output.print_table(["Key", "Problem"], rows, title=ref or locator)

    for line in report.messages():
        warning(line)
    if is_map and report.ok:
        count = len(keys_of(mapping))
        success(f"All {count} {plural_properties(count)} OK")
