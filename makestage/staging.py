"""
staging.py

Responsibility: Stage a source file into an isolated working directory.

Given `/music/album.cue` and the `split` recipe for `.cue` files, staging produces:

    /music/split:album.cue/
        Makefile        rendered copy of the recipe's template
        in.cue          the source file, renamed
        tags.txt        requirements declared by the recipe, moved from /music
        requires        manifest of the moved requirements, one per line
        .makestage.yaml record of the original location

The working directory name doubles as the lock: a second staging of the same
file with the same recipe is refused while the first is in progress.
"""

from __future__ import annotations

import datetime as _dt
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from makestage.build_tool import BuildTool
from makestage.catalog import Recipe, RecipeCatalog
from makestage.config import Config
from makestage.errors import AlreadyStaged, MissingRequirement, StagingError
from makestage.renderer import render_file, render_template_dir

logger = logging.getLogger(__name__)

SIDECAR_NAME = ".makestage.yaml"
WORKDIR_SEPARATOR = ":"


def extension_of(path: str | Path) -> str:
    return Path(path).suffix[1:]


def input_name(ext: str, stem: str = "in") -> str:
    return f"{stem}.{ext}" if ext else stem


def workdir_name(recipe_name: str, source_name: str) -> str:
    return f"{recipe_name}{WORKDIR_SEPARATOR}{source_name}"


@dataclass(frozen=True)
class StagedDirectory:
    """A working directory holding one transformation attempt."""

    path: Path
    source: Path
    recipe: str
    input_name: str
    requirements: list[str] = field(default_factory=list)
    template_name: str = "Makefile"
    manifest_name: str = "requires"

    @property
    def makefile(self) -> Path:
        return self.path / self.template_name

    @property
    def manifest(self) -> Path:
        return self.path / self.manifest_name

    @property
    def sidecar(self) -> Path:
        return self.path / SIDECAR_NAME

    @property
    def staged_input(self) -> Path:
        return self.path / self.input_name

    @property
    def parent(self) -> Path:
        return self.path.parent

    def to_record(self, staged_at: str) -> dict[str, Any]:
        return {
            "source": str(self.source),
            "recipe": self.recipe,
            "input": self.input_name,
            "staged_at": staged_at,
        }


def write_manifest(path: Path, names: list[str]) -> None:
    path.write_text("".join(f"{name}\n" for name in names), encoding="utf-8")


def read_manifest(path: Path) -> list[str]:
    if not path.is_file():
        return []
    return [line.strip() for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def move_file(src: Path, dst: Path) -> None:
    logger.debug("moving %s -> %s", src, dst)
    shutil.move(str(src), str(dst))


class Stager:
    def __init__(
        self,
        config: Config,
        catalog: RecipeCatalog | None = None,
        build_tool: BuildTool | None = None,
    ) -> None:
        self.config = config
        self.catalog = catalog or RecipeCatalog.from_config(config)
        self.build_tool = build_tool or BuildTool.from_config(config)

    def workdir_for(self, source: str | Path, recipe_name: str) -> Path:
        src = Path(source)
        return src.parent / workdir_name(recipe_name, src.name)

    def input_name(self, ext: str) -> str:
        return input_name(ext, self.config.input_stem)

    def _context(self, recipe: Recipe, source: Path, workdir: Path) -> dict[str, Any]:
        ext = extension_of(source)
        return {
            "recipe": recipe.name,
            "extension": ext,
            "source_name": source.name,
            "source_stem": source.stem,
            "input_name": self.input_name(ext),
            "workdir_name": workdir.name,
        }

    def _requirements(self, parent: Path, pending: Path) -> list[str]:
        listing = parent / self.build_tool.requires_target
        listing_existed = listing.exists()
        try:
            names = self.build_tool.declare_requirements(parent, pending)
        finally:
            # A listing written by the target itself must not stay behind in the parent.
            if not listing_existed and listing.is_file():
                listing.unlink()

        for name in names:
            if Path(name).name != name:
                raise MissingRequirement(f"Requirement must be a plain file name in {parent}: {name}")
            if not (parent / name).is_file():
                raise MissingRequirement(f"Recipe requires `{name}`, which does not exist in {parent}")
        return names

    def stage(self, source: str | Path, recipe_name: str) -> StagedDirectory:
        src = Path(source).absolute()
        ext = extension_of(src)
        parent = src.parent
        workdir = self.workdir_for(src, recipe_name)

        recipe = self.catalog.resolve(ext, recipe_name)
        if not src.is_file():
            raise StagingError(f"Not a regular file: {src}")
        if workdir.exists():
            raise AlreadyStaged(f"Already staged: {workdir}")

        context = self._context(recipe, src, workdir)
        pending = parent / f".{workdir.name}.{self.config.template_name}"
        render_file(recipe.template_path, pending, context)
        try:
            requirements = [n for n in self._requirements(parent, pending) if n != src.name]
        except Exception:
            pending.unlink(missing_ok=True)
            raise

        workdir.mkdir()
        try:
            render_template_dir(
                template_dir=recipe.path,
                destination_dir=workdir,
                context=context,
                exclude=(self.config.template_name,),
            )
        except Exception:
            # Nothing has moved yet; leave the parent as it was.
            shutil.rmtree(workdir, ignore_errors=True)
            pending.unlink(missing_ok=True)
            raise

        staged = StagedDirectory(
            path=workdir,
            source=src,
            recipe=recipe.identifier,
            input_name=context["input_name"],
            requirements=requirements,
            template_name=self.config.template_name,
            manifest_name=self.config.manifest_name,
        )
        move_file(pending, staged.makefile)
        for name in requirements:
            move_file(parent / name, workdir / name)
        move_file(src, staged.staged_input)

        write_manifest(staged.manifest, requirements)
        staged_at = _dt.datetime.now(_dt.timezone.utc).isoformat()
        staged.sidecar.write_text(
            yaml.safe_dump(staged.to_record(staged_at), sort_keys=True),
            encoding="utf-8",
        )
        logger.info("staged %s with %s in %s", src.name, recipe.identifier, workdir)
        return staged
