"""Canonical Pydantic models shared across specref modules.

The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory
(and optionally a project-local ``specref.json``):
    :class:`LoaderConfig`, :class:`OutputConfig` and :class:`GlobalConfig`.

**Report models** -- produced by the library and consumed by callers:
    :class:`KeyReport`, the informational result of a key-set check.

All models use Pydantic v2.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


# --- Config ---


class LoaderConfig(BaseModel):
    """Settings for :class:`~specref.parser.loader.DocumentLoader`."""

    timeout: float = Field(
        default=30.0, gt=0, description="Network fetch timeout in seconds"
    )
    follow_redirects: bool = Field(
        default=True, description="Follow HTTP redirects when fetching documents"
    )
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")


class OutputConfig(BaseModel):
    """Output preferences."""

    format: str = Field(
        default="auto", description="Default output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """Top-level user configuration stored in ``config.json``.

    Loaded by :func:`~specref.config.load_global_config` and persisted by
    :func:`~specref.config.save_global_config`. Every field has a default so
    a missing file behaves like an empty one.
    """

    loader: LoaderConfig = Field(default_factory=LoaderConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Reports ---


class KeyReport(BaseModel):
    """Result of checking a mapping's keys against a schema-like key set.

    This is informational data, never an error: a downstream validation
    layer decides what a missing or unexpected key means.

    Attributes:
        missing: Required keys absent from the mapping, in the order they
            were required.
        invalid: Keys present in the mapping that match neither an allowed
            name nor an allowed pattern, in mapping order.
    """

    missing: list[str] = Field(default_factory=list)
    invalid: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing and not self.invalid

    def messages(self) -> list[str]:
        """Human-readable warning lines, one per problem key."""
        lines = [f"missing required key '{key}'" for key in self.missing]
        lines.extend(f"key '{key}' is not allowed" for key in self.invalid)
        return lines
