# =============================================================================
# src/cli/__main__.py - Package Entry Point
# =============================================================================
#
# Enables running the CLI package itself as a module:
#     python -m src.cli worker
#     python -m src.cli sweep --dry-run
# =============================================================================

"""Allow ``python -m src.cli`` execution."""

from src.cli.docsearch import main

main()
