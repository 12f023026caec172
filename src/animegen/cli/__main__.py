"""CLI entry point for animegen.cli module.

Enables execution via: python -m animegen.cli PROMPT [OPTIONS]
"""

from animegen.cli.generate import main

if __name__ == "__main__":
    raise SystemExit(main())
