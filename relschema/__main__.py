# File: relschema/__main__.py
"""
RelSchema - Module entry point.

Allows running the compiler directly via::

    python -m relschema --schema schema.yaml

This module simply delegates to the CLI entry point defined in ``relschema.cli``.
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from relschema.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
