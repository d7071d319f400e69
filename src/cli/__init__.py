# =============================================================================
# src/cli/__init__.py - CLI Module Overview
# =============================================================================
#
# Command-line tools for operators running the document search service
# outside the web API.  The API process never indexes anything itself
# unless RUN_EMBEDDED_WORKER is set; production deployments run one or more
# ``worker`` processes from here.
#
#   docsearch.py  provision / worker / sweep
#
# Architecture Notes:
#   - argparse, same as the rest of the tooling.
#   - Collaborators come from src.main.build_components so the CLI and the
#     API always agree on database paths, queue topology and index mapping.
# =============================================================================

"""CLI tools for document search.

- ``python -m src.cli provision`` - create tables, index schema, queue topology
- ``python -m src.cli worker`` - run an indexing worker
- ``python -m src.cli sweep`` - requeue INDEXED documents missing from the index
"""
