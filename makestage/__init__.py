"""
makestage package

This package implements makestage as a CLI-first utility for running
Makefile "recipes" against single files in an isolated working directory.

Key responsibilities are split across modules:
- `config.py`: load configuration (recipes root, build tool, target names)
- `catalog.py`: enumerate and resolve recipes on disk
- `renderer.py`: render/copy recipe files into a working directory
- `build_tool.py`: isolated build tool invocations (requirements / outputs / build)
- `staging.py`: stage a source file into a `<recipe>:<file>` working directory
- `lifecycle.py`: abort or finalize a staged working directory
- `selector.py`: pluggable recipe choice (prompt / fixed)
- `cli.py`: CLI entrypoint and orchestration
"""

from __future__ import annotations

from makestage.catalog import Recipe, RecipeCatalog
from makestage.config import Config, load_config
from makestage.lifecycle import Lifecycle, State, state_of
from makestage.staging import StagedDirectory, Stager

__all__ = [
    "__version__",
    "Config",
    "Lifecycle",
    "Recipe",
    "RecipeCatalog",
    "StagedDirectory",
    "Stager",
    "State",
    "load_config",
    "state_of",
]

__version__ = "0.1.0"
