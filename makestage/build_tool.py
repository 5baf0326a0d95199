"""
build_tool.py

Responsibility: Isolate all direct build tool (make) invocations.

This module must be the only place that:
- Constructs make command lines
- Runs make as a subprocess
- Interprets make's output and exit status

Whether a target exists is decided from make's printed rule database, not by
scanning error messages. Callers get a `TargetResult`:
- `Success(lines)`: the target ran; `lines` are the file names it declared
- `TargetUndefined(target)`: the makefile has no such target
- `ToolError(code, output)`: make ran and failed
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from makestage.config import Config
from makestage.errors import BuildToolError, MalformedRecipe

logger = logging.getLogger(__name__)

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


@dataclass(frozen=True)
class Success:
    lines: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TargetUndefined:
    target: str


@dataclass(frozen=True)
class ToolError:
    code: int
    output: str = ""


TargetResult = Union[Success, TargetUndefined, ToolError]


def parse_database(text: str) -> set[str]:
    """
    Collect target names from `make -p` output.

    Only the `# Files` section is considered. Its header is not always preceded by
    a blank line (pattern rules put an implicit-rule summary right above it), so
    the output is scanned line by line. An entry starts after a blank line; entries
    marked `# Not a target:` start with that comment instead and are skipped, as are
    special targets such as `.PHONY`.
    """
    targets: set[str] = set()
    in_files = False
    previous = ""
    for line in text.splitlines():
        if line.startswith("# Files"):
            in_files = True
        elif line.startswith("# Finished Make data base"):
            break
        elif in_files and not previous.strip() and ":" in line and not line.startswith(("#", ".", "\t", " ")):
            name = line.split(":", 1)[0].strip()
            if name and "%" not in name and "=" not in name:
                targets.add(name)
        previous = line
    return targets


def _declared_lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def _unique(items: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


class BuildTool:
    def __init__(
        self,
        command: str = "make",
        *,
        requires_target: str = "requires",
        outputs_target: str = "provide",
        runner: Runner | None = None,
    ) -> None:
        self.command = command
        self.requires_target = requires_target
        self.outputs_target = outputs_target
        self._runner = runner

    @classmethod
    def from_config(cls, config: Config, runner: Runner | None = None) -> "BuildTool":
        return cls(
            config.make_command,
            requires_target=config.requires_target,
            outputs_target=config.outputs_target,
            runner=runner,
        )

    def _cmd(self, makefile: Path | None, *args: str) -> list[str]:
        cmd = shlex.split(self.command)
        if makefile is not None:
            cmd += ["-f", str(makefile)]
        return cmd + list(args)

    def _run(self, cmd: list[str], *, cwd: Path) -> "subprocess.CompletedProcess[str]":
        logger.debug("running %s in %s", " ".join(cmd), cwd)
        try:
            return (self._runner or subprocess.run)(
                cmd,
                cwd=str(cwd),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            raise BuildToolError(cmd, 127, f"Build tool not found: {self.command}") from e

    def defined_targets(self, cwd: str | Path, makefile: str | Path | None = None) -> set[str]:
        """Targets with a rule in `makefile` (make's default makefile when None)."""
        mf = Path(makefile) if makefile is not None else None
        # `-q :` evaluates nothing; make exits non-zero but still prints its database.
        result = self._run(self._cmd(mf, "-pRrq", ":"), cwd=Path(cwd))
        return parse_database(result.stdout)

    def query(self, target: str, cwd: str | Path, makefile: str | Path | None = None) -> TargetResult:
        """
        Run `target` and collect the file names it declares.

        Declared names are the lines it prints on stdout followed by the lines of
        a file named after the target in `cwd`, if one exists afterwards. A target
        without a rule whose file already exists counts as defined, as it does for
        make itself.
        """
        workdir = Path(cwd)
        mf = Path(makefile) if makefile is not None else None
        listing = workdir / target

        if target not in self.defined_targets(workdir, mf) and not listing.is_file():
            logger.debug("target %s is not defined", target)
            return TargetUndefined(target)

        result = self._run(self._cmd(mf, "-s", target), cwd=workdir)
        if result.returncode != 0:
            return ToolError(result.returncode, (result.stdout + result.stderr).strip())

        lines = _declared_lines(result.stdout)
        if listing.is_file():
            lines += _declared_lines(listing.read_text(encoding="utf-8"))
        return Success(_unique(lines))

    def _declared(self, target: str, cwd: str | Path, makefile: str | Path | None) -> list[str]:
        result = self.query(target, cwd, makefile)
        if isinstance(result, TargetUndefined):
            raise MalformedRecipe(f"Build script does not define the `{result.target}` target")
        if isinstance(result, ToolError):
            mf = Path(makefile) if makefile is not None else None
            raise BuildToolError(self._cmd(mf, "-s", target), result.code, result.output)
        return result.lines

    def declare_requirements(self, cwd: str | Path, makefile: str | Path | None = None) -> list[str]:
        return self._declared(self.requires_target, cwd, makefile)

    def declare_outputs(self, cwd: str | Path, makefile: str | Path | None = None) -> list[str]:
        return self._declared(self.outputs_target, cwd, makefile)

    def build(self, cwd: str | Path, target: str | None = None) -> str:
        """Run the build in a staged directory; returns make's combined output."""
        cmd = self._cmd(None, *([target] if target else []))
        result = self._run(cmd, cwd=Path(cwd))
        output = (result.stdout + result.stderr).strip()
        if result.returncode != 0:
            raise BuildToolError(cmd, result.returncode, output)
        return output
