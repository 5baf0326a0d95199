"""
renderer.py

Responsibility: Render/copy recipe files into a working directory.

Rules:
- Walk recipe files in sorted order to ensure deterministic output.
- For UTF-8 text files, if Jinja2 markers are present, render with the provided context.
- Everything else (plain Makefiles, binary assets) is copied byte-for-byte.

This module intentionally does NOT know about make, staging or CLI parsing.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined

from makestage.errors import MalformedRecipe

logger = logging.getLogger(__name__)

# Comments use `{## ... ##}` so shell `$${#var}` in Makefiles stays plain text.
_MARKERS = ("{{", "{%", "{##")


class RenderError(MalformedRecipe):
    pass


@dataclass(frozen=True)
class RenderResult:
    rendered_files: int
    copied_files: int


def _environment() -> Environment:
    return Environment(
        autoescape=False,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        comment_start_string="{##",
        comment_end_string="##}",
    )


def _read_text(path: Path) -> str | None:
    """
    Best-effort: return the file's text, or None if it cannot be decoded as UTF-8.
    """
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return None


def iter_recipe_files(recipe_dir: Path) -> list[Path]:
    """
    Return all files under recipe_dir, in deterministic lexicographic order
    (relative path ordering).
    """
    files: list[Path] = []
    for root, _dirs, filenames in os.walk(recipe_dir):
        root_path = Path(root)
        for name in filenames:
            files.append(root_path / name)
    files.sort(key=lambda p: str(p.relative_to(recipe_dir)).replace(os.sep, "/"))
    return files


def render_file(src: str | Path, dst: str | Path, context: dict[str, Any]) -> bool:
    """
    Render or copy a single file. Returns True when Jinja2 rendering happened.
    """
    src_path = Path(src)
    dst_path = Path(dst)
    dst_path.parent.mkdir(parents=True, exist_ok=True)

    text = _read_text(src_path)
    if text is None or not any(marker in text for marker in _MARKERS):
        shutil.copy2(src_path, dst_path)
        logger.debug("copied %s -> %s", src_path, dst_path)
        return False

    try:
        out = _environment().from_string(text).render(**context)
    except Exception as e:  # noqa: BLE001 - surface as RenderError
        raise RenderError(f"Failed rendering recipe file: {src_path}") from e
    # For rendered output, normalize newlines for stable cross-platform output.
    dst_path.write_text(out, encoding="utf-8", newline="\n")
    shutil.copystat(src_path, dst_path)
    logger.debug("rendered %s -> %s", src_path, dst_path)
    return True


def render_template_dir(
    *,
    template_dir: str | Path,
    destination_dir: str | Path,
    context: dict[str, Any],
    exclude: Iterable[str] = (),
) -> RenderResult:
    """
    Render/copy a recipe directory into destination_dir.

    - Creates destination directories as needed.
    - Copies file permissions from recipe files.
    - Skips files whose path relative to the recipe directory is in `exclude`.
    """
    tpl_dir = Path(template_dir).resolve()
    dst_dir = Path(destination_dir).resolve()

    if not tpl_dir.is_dir():
        raise RenderError(f"Recipe directory not found: {tpl_dir}")

    skipped = set(exclude)
    rendered = 0
    copied = 0

    for src_path in iter_recipe_files(tpl_dir):
        rel = src_path.relative_to(tpl_dir)
        if rel.as_posix() in skipped:
            continue
        if render_file(src_path, dst_dir / rel, context):
            rendered += 1
        else:
            copied += 1

    return RenderResult(rendered_files=rendered, copied_files=copied)
