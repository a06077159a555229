"""Built-in CLI sub-commands for specref.

* :mod:`~specref.commands.resolve` -- ``resolve``, ``deref`` and
  ``describe``: locate a fragment and print it.
* :mod:`~specref.commands.validate` -- ``check-keys``: compare a mapping's
  keys against required/allowed names and patterns.
* :mod:`~specref.commands.config` -- view and modify global settings.

Single commands export a plain callback registered on the root app; the
``config`` group exports a :class:`typer.Typer` sub-application.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import typer

from specref.exceptions import SpecrefError
from specref.models import GlobalConfig, LoaderConfig
from specref.output import debug, error
from specref.parser import ReferenceResolver


def loader_config(ctx: typer.Context) -> LoaderConfig:
    """Return the loader settings resolved by the root callback."""
    config = ctx.obj.get("config") if ctx.obj else None
    if isinstance(config, GlobalConfig):
        return config.loader
    return LoaderConfig()


@contextmanager
def open_resolver(ctx: typer.Context) -> Iterator[ReferenceResolver]:
    """Yield a resolver for one command, mapping library errors to exit codes.

    A :class:`~specref.exceptions.SpecrefError` raised inside the block is
    printed to stderr and turned into ``typer.Exit`` with the error's exit
    code.
    """
    resolver = ReferenceResolver(config=loader_config(ctx))
    try:
        yield resolver
    except SpecrefError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    finally:
        stats = resolver.stats()
        debug(
            f"cache: {stats['entries']} entries, {stats['hits']} hits, "
            f"{stats['misses']} misses, {stats['loads']} document loads"
        )
        resolver.close()
