"""
lifecycle.py

Responsibility: Finish a staged transformation, either way.

    CLEAN --stage--> STAGED --abort----> ABORTED   --> CLEAN
                            --finalize-> COMMITTED --> CLEAN

- abort: put the source and the moved requirements back, delete the working directory
- finalize: promote the declared outputs next to the source, then abort

Every precondition is checked before the first file moves. Once moving has
started there is no rollback; recipes are expected to be re-runnable.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Collection
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from makestage.build_tool import BuildTool
from makestage.config import Config
from makestage.errors import (
    MissingOutput,
    NamingInvariantViolation,
    NoOutputs,
    NotStaged,
    OutputConflict,
    StagingError,
)
from makestage.staging import (
    SIDECAR_NAME,
    WORKDIR_SEPARATOR,
    StagedDirectory,
    extension_of,
    input_name,
    move_file,
    read_manifest,
)

logger = logging.getLogger(__name__)


class State(Enum):
    CLEAN = "clean"
    STAGED = "staged"
    COMMITTED = "committed"
    ABORTED = "aborted"


def state_of(path: str | Path, template_name: str = "Makefile") -> State:
    """COMMITTED and ABORTED are transient; on disk they are indistinguishable from CLEAN."""
    return State.STAGED if (Path(path) / template_name).is_file() else State.CLEAN


def parse_workdir_name(name: str) -> tuple[str, str]:
    """Split `<recipe>:<original file name>`."""
    recipe, sep, source_name = name.partition(WORKDIR_SEPARATOR)
    if not sep or not recipe or not source_name or Path(source_name).name != source_name:
        raise NamingInvariantViolation(
            f"Working directory name must look like `<recipe>{WORKDIR_SEPARATOR}<file>`: {name}"
        )
    return recipe, source_name


class Lifecycle:
    def __init__(self, config: Config, build_tool: BuildTool | None = None) -> None:
        self.config = config
        self.build_tool = build_tool or BuildTool.from_config(config)

    def _record(self, workdir: Path) -> dict[str, Any]:
        sidecar = workdir / SIDECAR_NAME
        if sidecar.is_file():
            data = yaml.safe_load(sidecar.read_text(encoding="utf-8")) or {}
            if isinstance(data, dict) and data.get("source"):
                return data
            logger.warning("ignoring unreadable staging record %s", sidecar)

        recipe, source_name = parse_workdir_name(workdir.name)
        return {
            "source": str(workdir.parent / source_name),
            "recipe": recipe,
            "input": input_name(extension_of(source_name), self.config.input_stem),
        }

    def load(self, workdir: str | Path) -> StagedDirectory:
        """Recover the staging record of `workdir`, raising NotStaged when there is none."""
        path = Path(workdir).absolute()
        if state_of(path, self.config.template_name) is not State.STAGED:
            raise NotStaged(f"No {self.config.template_name} in {path}; nothing is staged there")

        record = self._record(path)
        # The working directory always sits next to the original file.
        source = path.parent / Path(str(record["source"])).name
        manifest = path / self.config.manifest_name
        return StagedDirectory(
            path=path,
            source=source,
            recipe=str(record.get("recipe", "")),
            input_name=str(record.get("input") or input_name(extension_of(source), self.config.input_stem)),
            requirements=read_manifest(manifest),
            template_name=self.config.template_name,
            manifest_name=self.config.manifest_name,
        )

    def status(self, workdir: str | Path) -> dict[str, Any]:
        path = Path(workdir).absolute()
        state = state_of(path, self.config.template_name)
        if state is State.CLEAN:
            return {"state": state.value, "path": str(path)}
        staged = self.load(path)
        return {
            "state": state.value,
            "path": str(staged.path),
            "source": str(staged.source),
            "recipe": staged.recipe,
            "input": staged.input_name,
            "requirements": staged.requirements,
        }

    def _restorations(
        self,
        staged: StagedDirectory,
        *,
        restore_input: bool,
        promoted: Collection[str] = (),
    ) -> list[tuple[Path, Path]]:
        parent = staged.parent
        moves: list[tuple[Path, Path]] = []

        if restore_input:
            if not staged.staged_input.is_file():
                raise StagingError(f"Staged input {staged.input_name} is missing from {staged.path}")
            moves.append((staged.staged_input, staged.source))

        for name in staged.requirements:
            src = staged.path / name
            if name in promoted:
                continue
            if not src.exists():
                logger.warning("requirement %s is no longer in %s; skipping", name, staged.path)
                continue
            moves.append((src, parent / name))

        for _src, dst in moves:
            if dst.exists():
                raise OutputConflict(f"Refusing to overwrite {dst}")
        return moves

    def _teardown(self, staged: StagedDirectory, moves: list[tuple[Path, Path]]) -> None:
        for src, dst in moves:
            move_file(src, dst)
        shutil.rmtree(staged.path)
        logger.info("removed %s; %s refreshed", staged.path.name, staged.parent)

    def abort(self, workdir: str | Path) -> Path:
        """Undo staging. Returns the restored source path."""
        staged = self.load(workdir)
        self._teardown(staged, self._restorations(staged, restore_input=True))
        logger.info("aborted %s", staged.path.name)
        return staged.source

    def _promotions(self, staged: StagedDirectory, outputs: list[str]) -> tuple[list[tuple[Path, Path]], bool]:
        parent = staged.parent
        source_ext = extension_of(staged.source)
        in_place = staged.input_name in outputs
        moves: list[tuple[Path, Path]] = []

        for name in outputs:
            src = staged.path / name
            if not src.is_file():
                raise MissingOutput(f"Declared output `{name}` does not exist in {staged.path}")
            if name == staged.input_name:
                dst = staged.source
            elif len(outputs) == 1 and extension_of(name) != source_ext:
                # Single output: keep the original's name, take the output's extension.
                dst = staged.source.with_suffix(Path(name).suffix)
            else:
                dst = parent / Path(name).name
            moves.append((src, dst))

        targets = [dst for _src, dst in moves]
        for name, dst in zip(outputs, targets):
            if targets.count(dst) > 1:
                raise OutputConflict(f"Several outputs would be promoted to {dst}")
            if dst == staged.source and name != staged.input_name:
                raise OutputConflict(f"Output `{name}` would take the place of the original {dst}")
            if dst.exists():
                raise OutputConflict(f"Refusing to overwrite {dst}")
        return moves, in_place

    def finalize(self, workdir: str | Path, *, allow_empty: bool = False) -> list[Path]:
        """Promote the declared outputs next to the source, then abort. Returns the promoted paths."""
        staged = self.load(workdir)
        outputs = self.build_tool.declare_outputs(staged.path, staged.makefile)
        if not outputs and not allow_empty:
            raise NoOutputs(
                f"`{self.build_tool.outputs_target}` declared no outputs in {staged.path}; "
                "run the build first, or abort"
            )

        promotions, in_place = self._promotions(staged, outputs)
        restorations = self._restorations(staged, restore_input=not in_place, promoted=set(outputs))
        clash = {dst for _s, dst in promotions} & {dst for _s, dst in restorations}
        if clash:
            raise OutputConflict(f"Outputs collide with restored files: {', '.join(sorted(map(str, clash)))}")

        for src, dst in promotions:
            move_file(src, dst)
            logger.info("promoted %s -> %s", src.name, dst)
        self._teardown(staged, restorations)
        logger.info("finalized %s", staged.path.name)
        return [dst for _src, dst in promotions]
