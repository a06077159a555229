"""Resolve commands -- locate a fragment and print it.

``specref resolve`` prints the fragment a reference designates,
``specref deref`` additionally inlines every ``$ref`` nested inside it, and
``specref describe`` prints the indented diagnostic rendering of a
fragment regardless of the output format.
"""

from __future__ import annotations

from typing import Optional

import typer

from specref.commands import open_resolver
from specref.output import format_tree, print_data
from specref.tree import describe


def resolve_command(
    ctx: typer.Context,
    base: str = typer.Argument(help="Path or URL of the document holding the reference."),
    ref: str = typer.Argument(help="Reference, e.g. 'other.yaml#/definitions/Widget'."),
) -> None:
    """Resolve REF relative to BASE and print the fragment.

    Example::

        specref resolve spec/root.yaml 'other.yaml#/definitions/Widget'
        specref --json resolve spec/root.yaml '#/info'
    """
    with open_resolver(ctx) as resolver:
        node = resolver.resolve(base, ref)
    format_tree(node)


def deref_command(
    ctx: typer.Context,
    locator: str = typer.Argument(help="Path or URL of the document."),
    ref: Optional[str] = typer.Option(
        None, "--ref", "-r", help="Reference to expand instead of the whole document."
    ),
    keep_cycles: bool = typer.Option(
        False, "--keep-cycles", help="Leave cyclic $ref mappings in place instead of failing."
    ),
) -> None:
    """Print a document (or one fragment) with every nested $ref inlined.

    Example::

        specref deref spec/root.yaml --ref '#/paths'
        specref deref spec/tree.yaml --keep-cycles
    """
    with open_resolver(ctx) as resolver:
        node = resolver.resolve_deep(locator, ref or "", keep_cycles=keep_cycles)
    format_tree(node)


def describe_command(
    ctx: typer.Context,
    locator: str = typer.Argument(help="Path or URL of the document."),
    ref: Optional[str] = typer.Option(
        None, "--ref", "-r", help="Reference to describe instead of the whole document."
    ),
) -> None:
    """Print the indented key/index outline of a document or fragment.

    Example::

        specref describe spec/root.yaml --ref '#/definitions'
    """
    with open_resolver(ctx) as resolver:
        node = resolver.resolve(locator, ref or "")
    print_data(describe(node).rstrip("\n"))
