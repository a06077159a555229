"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~specref.exceptions.SpecrefError` subclass.
Shell wrappers can inspect the exit code to tell a missing file from a bad
reference without parsing stderr.

Example::

    $ specref resolve spec/root.yaml '#/definitions/Nope'
    $ echo $?
    6   # EXIT_REFERENCE_ERROR -- the fragment path could not be walked
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_IO_ERROR = 3
"""A local document could not be read (missing file, permission denied)."""

EXIT_NETWORK_ERROR = 4
"""A remote document could not be fetched (unreachable, timeout, non-2xx)."""

EXIT_PARSE_ERROR = 5
"""A document was read but is not valid YAML or JSON."""

EXIT_REFERENCE_ERROR = 6
"""A reference fragment could not be walked, or the reference graph is cyclic."""
