"""CLI entry point for colorbook.cli module.

Enables execution via: python -m colorbook.cli <command>
"""

from colorbook.cli.studio import main

if __name__ == "__main__":
    raise SystemExit(main())
