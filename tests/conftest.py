"""
Pytest configuration and fixtures for makestage tests.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

from makestage.build_tool import BuildTool
from makestage.catalog import RecipeCatalog
from makestage.config import Config
from makestage.lifecycle import Lifecycle
from makestage.staging import Stager

SPLIT_MAKEFILE = """\
CUEFILE = $(shell ls *.cue)

all: provide

provide:
\tcuebreakpoints "$(CUEFILE)" | shnsplit -o flac *.flac

requires:
\t@echo tags.txt

.PHONY: all requires
"""

TO_PNG_MAKEFILE = """\
# rendering {{ source_name }} as {{ input_name }}
{{ source_stem }}.png: {{ input_name }}
\tdot -Tpng "$^" > "$@"

requires:

.PHONY: requires
"""


def make_database(*targets: str) -> str:
    """A trimmed-down `make -pRrq :` listing that defines `targets`."""
    entries = "\n\n".join(
        f"{name}:\n#  Phony target (prerequisite of .PHONY).\n#  File does not exist." for name in targets
    )
    return (
        "# GNU Make 4.3\n"
        "# Built for x86_64-pc-linux-gnu\n"
        "\n"
        "# Variables\n"
        "\n"
        "# makefile\n"
        "MAKEFILE_LIST :=  Makefile\n"
        "\n"
        "# Files\n"
        "\n"
        "# Not a target:\n"
        "Makefile:\n"
        "#  Implicit rule search has been done.\n"
        "\n"
        f"{entries}\n"
        "\n"
        "# Not a target:\n"
        ".PHONY: all requires\n"
        "#  Implicit rule search has not been done.\n"
        "\n"
        "# files hash-table stats:\n"
        "# Load=3/1024=0%, Rehash=0, Collisions=0/7=0%\n"
        "\n"
        "# Finished Make data base on Sat Oct 17 10:00:00 2026\n"
    )


TargetAction = Callable[[Path], "str | tuple[int, str]"]


class FakeMake:
    """
    Stands in for subprocess.run when the command is `make`.

    `targets` maps a target name to a callable receiving the working directory and
    returning stdout, or `(returncode, output)` for a failing run.
    """

    def __init__(self, targets: dict[str, TargetAction] | None = None) -> None:
        self.targets: dict[str, TargetAction] = dict(targets or {})
        self.calls: list[tuple[list[str], str]] = []

    def __call__(self, cmd, *, cwd=None, **_kwargs) -> subprocess.CompletedProcess[str]:
        self.calls.append((list(cmd), cwd))
        if "-pRrq" in cmd:
            return subprocess.CompletedProcess(cmd, 2, make_database(*self.targets), "make: *** No rule to make target ':'.")

        goal = cmd[-1] if len(cmd) > 1 and not cmd[-1].startswith("-") else "all"
        action = self.targets.get(goal)
        if action is None and (Path(cwd) / goal).exists():
            return subprocess.CompletedProcess(cmd, 0, "", "")
        if action is None:
            return subprocess.CompletedProcess(cmd, 2, "", f"make: *** No rule to make target '{goal}'.  Stop.")
        result = action(Path(cwd))
        if isinstance(result, tuple):
            code, output = result
            return subprocess.CompletedProcess(cmd, code, "", output)
        return subprocess.CompletedProcess(cmd, 0, result, "")

    def goals(self) -> list[str]:
        return [cmd[-1] for cmd, _cwd in self.calls if "-pRrq" not in cmd]


@pytest.fixture
def recipes_root(tmp_path: Path) -> Path:
    root = tmp_path / "recipes"
    split = root / "cue" / "split"
    split.mkdir(parents=True)
    (split / "Makefile").write_text(SPLIT_MAKEFILE)
    (split / "naming.sed").write_text("s/ /_/g\n")

    to_png = root / "dot" / "to-png"
    to_png.mkdir(parents=True)
    (to_png / "Makefile").write_text(TO_PNG_MAKEFILE)

    (root / "mix" / "enca").mkdir(parents=True)
    return root


@pytest.fixture
def config(recipes_root: Path) -> Config:
    return Config(recipes_root=recipes_root)


@pytest.fixture
def music(tmp_path: Path) -> Path:
    music_dir = tmp_path / "music"
    music_dir.mkdir()
    (music_dir / "album.cue").write_text('FILE "album.flac" WAVE\n')
    (music_dir / "tags.txt").write_text("ARTIST=Someone\n")
    return music_dir


@pytest.fixture
def fake_make() -> FakeMake:
    return FakeMake({"requires": lambda cwd: "tags.txt\n"})


@pytest.fixture
def build_tool(config: Config, fake_make: FakeMake) -> BuildTool:
    return BuildTool.from_config(config, runner=fake_make)


@pytest.fixture
def stager(config: Config, build_tool: BuildTool) -> Stager:
    return Stager(config, catalog=RecipeCatalog.from_config(config), build_tool=build_tool)


@pytest.fixture
def lifecycle(config: Config, build_tool: BuildTool) -> Lifecycle:
    return Lifecycle(config, build_tool=build_tool)


def snapshot(directory: Path) -> dict[str, bytes]:
    """Relative path -> content for every file under `directory`."""
    return {
        p.relative_to(directory).as_posix(): p.read_bytes()
        for p in sorted(directory.rglob("*"))
        if p.is_file()
    }
