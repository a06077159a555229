"""specref -- Resolve ``$ref`` pointers across YAML/JSON API description documents.

This package loads OpenAPI-style documents from local files or URLs into
order-preserving trees and resolves reference strings such as
``other.yaml#/definitions/Widget`` to the fragments they designate. Resolved
fragments are memoised per resolver session so the same reference is never
fetched or parsed twice.

Typical usage::

    from specref.parser import ReferenceResolver

    with ReferenceResolver() as resolver:
        widget = resolver.resolve("spec/root.yaml", "other.yaml#/definitions/Widget")

Modules:
    app: Typer application and CLI entry point.
    tree: Order-preserving tree accessors and the diagnostic describer.
    validation: Key-set checks against required/allowed names and patterns.
    models: Pydantic models for configuration and validation reports.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
