from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeMake, snapshot
from makestage.build_tool import BuildTool
from makestage.config import Config
from makestage.errors import (
    MalformedRecipe,
    MissingOutput,
    NamingInvariantViolation,
    NoOutputs,
    NotStaged,
    OutputConflict,
)
from makestage.lifecycle import Lifecycle, State, parse_workdir_name, state_of
from makestage.staging import Stager


@pytest.fixture
def staged_album(stager: Stager, music: Path) -> Path:
    return stager.stage(music / "album.cue", "split").path


def test_stage_then_abort_restores_everything(stager: Stager, lifecycle: Lifecycle, music: Path) -> None:
    before = snapshot(music)
    staged = stager.stage(music / "album.cue", "split")
    assert lifecycle.abort(staged.path) == music / "album.cue"
    assert snapshot(music) == before
    assert not staged.path.exists()


def test_abort_album_scenario(lifecycle: Lifecycle, staged_album: Path, music: Path) -> None:
    (staged_album / "split-track01.flac").write_bytes(b"fLaC")
    lifecycle.abort(staged_album)
    assert (music / "album.cue").read_text() == 'FILE "album.flac" WAVE\n'
    assert (music / "tags.txt").read_text() == "ARTIST=Someone\n"
    assert not staged_album.exists()
    assert not (music / "split-track01.flac").exists()


def test_abort_keeps_edits_to_requirements(lifecycle: Lifecycle, staged_album: Path, music: Path) -> None:
    (staged_album / "tags.txt").write_text("ARTIST=Someone Else\n")
    lifecycle.abort(staged_album)
    assert (music / "tags.txt").read_text() == "ARTIST=Someone Else\n"


def test_abort_skips_vanished_requirements(lifecycle: Lifecycle, staged_album: Path, music: Path) -> None:
    (staged_album / "tags.txt").unlink()
    lifecycle.abort(staged_album)
    assert (music / "album.cue").exists()
    assert not (music / "tags.txt").exists()


@pytest.mark.parametrize("operation", ["abort", "finalize"])
def test_not_staged_mutates_nothing(lifecycle: Lifecycle, staged_album: Path, music: Path, operation: str) -> None:
    (staged_album / "Makefile").unlink()
    before = snapshot(music)
    with pytest.raises(NotStaged):
        getattr(lifecycle, operation)(staged_album)
    with pytest.raises(NotStaged):
        getattr(lifecycle, operation)(music)
    assert snapshot(music) == before


def test_finalize_promotes_tracks(
    lifecycle: Lifecycle, staged_album: Path, music: Path, fake_make: FakeMake
) -> None:
    (staged_album / "track1.flac").write_bytes(b"one")
    (staged_album / "track2.flac").write_bytes(b"two")
    fake_make.targets["provide"] = lambda cwd: "track1.flac\ntrack2.flac\n"

    promoted = lifecycle.finalize(staged_album)

    assert promoted == [music / "track1.flac", music / "track2.flac"]
    assert (music / "track1.flac").read_bytes() == b"one"
    assert (music / "track2.flac").read_bytes() == b"two"
    assert sorted(p.name for p in music.iterdir()) == ["album.cue", "tags.txt", "track1.flac", "track2.flac"]
    assert not staged_album.exists()
    assert fake_make.calls[-1][1] == str(staged_album)


def test_finalize_reads_listing_file(
    lifecycle: Lifecycle, staged_album: Path, music: Path, fake_make: FakeMake
) -> None:
    def provide(cwd: Path) -> str:
        (cwd / "01 - Intro.flac").write_bytes(b"1")
        (cwd / "provide").write_text("01 - Intro.flac\n")
        return ""

    fake_make.targets["provide"] = provide
    # One output with a different extension takes the original's name.
    assert lifecycle.finalize(staged_album) == [music / "album.flac"]
    assert (music / "album.flac").read_bytes() == b"1"
    assert not (music / "provide").exists()


def test_single_output_with_new_extension(config: Config, tmp_path: Path) -> None:
    (tmp_path / "graph.dot").write_text("digraph {}\n")
    fake = FakeMake({"requires": lambda cwd: "", "provide": lambda cwd: "in.png\n"})
    tool = BuildTool.from_config(config, runner=fake)
    staged = Stager(config, build_tool=tool).stage(tmp_path / "graph.dot", "to-png")
    (staged.path / "in.png").write_bytes(b"\x89PNG")

    assert Lifecycle(config, build_tool=tool).finalize(staged.path) == [tmp_path / "graph.png"]
    assert (tmp_path / "graph.png").read_bytes() == b"\x89PNG"
    assert (tmp_path / "graph.dot").read_text() == "digraph {}\n"
    assert not staged.path.exists()


def test_single_output_with_same_extension_keeps_its_name(
    lifecycle: Lifecycle, staged_album: Path, music: Path, fake_make: FakeMake
) -> None:
    (staged_album / "fixed.cue").write_text("fixed\n")
    fake_make.targets["provide"] = lambda cwd: "fixed.cue\n"
    assert lifecycle.finalize(staged_album) == [music / "fixed.cue"]
    assert (music / "album.cue").exists()


def test_in_place_output_replaces_original(
    lifecycle: Lifecycle, staged_album: Path, music: Path, fake_make: FakeMake
) -> None:
    (staged_album / "in.cue").write_text("re-encoded\n")
    fake_make.targets["provide"] = lambda cwd: "in.cue\n"
    assert lifecycle.finalize(staged_album) == [music / "album.cue"]
    assert (music / "album.cue").read_text() == "re-encoded\n"
    assert (music / "tags.txt").exists()
    assert not staged_album.exists()


def test_no_outputs_is_an_error_unless_allowed(
    lifecycle: Lifecycle, staged_album: Path, music: Path, fake_make: FakeMake
) -> None:
    fake_make.targets["provide"] = lambda cwd: ""
    with pytest.raises(NoOutputs):
        lifecycle.finalize(staged_album)
    assert state_of(staged_album) is State.STAGED

    assert lifecycle.finalize(staged_album, allow_empty=True) == []
    assert not staged_album.exists()
    assert sorted(p.name for p in music.iterdir()) == ["album.cue", "tags.txt"]


def test_finalize_without_outputs_target(lifecycle: Lifecycle, staged_album: Path) -> None:
    with pytest.raises(MalformedRecipe, match="provide"):
        lifecycle.finalize(staged_album)
    assert state_of(staged_album) is State.STAGED


def test_missing_output_moves_nothing(
    lifecycle: Lifecycle, staged_album: Path, music: Path, fake_make: FakeMake
) -> None:
    (staged_album / "track1.flac").write_bytes(b"one")
    fake_make.targets["provide"] = lambda cwd: "track1.flac\ntrack9.flac\n"
    with pytest.raises(MissingOutput):
        lifecycle.finalize(staged_album)
    assert (staged_album / "track1.flac").exists()
    assert not (music / "track1.flac").exists()


def test_output_conflict_moves_nothing(
    lifecycle: Lifecycle, staged_album: Path, music: Path, fake_make: FakeMake
) -> None:
    (music / "track1.flac").write_bytes(b"old")
    (staged_album / "track1.flac").write_bytes(b"new")
    (staged_album / "track2.flac").write_bytes(b"two")
    fake_make.targets["provide"] = lambda cwd: "track2.flac\ntrack1.flac\n"
    with pytest.raises(OutputConflict):
        lifecycle.finalize(staged_album)
    assert (music / "track1.flac").read_bytes() == b"old"
    assert not (music / "track2.flac").exists()
    assert state_of(staged_album) is State.STAGED


def test_output_may_not_take_the_originals_name(
    lifecycle: Lifecycle, staged_album: Path, fake_make: FakeMake
) -> None:
    (staged_album / "album.cue").write_text("x")
    (staged_album / "other.cue").write_text("y")
    fake_make.targets["provide"] = lambda cwd: "album.cue\nother.cue\n"
    with pytest.raises(OutputConflict):
        lifecycle.finalize(staged_album)


def test_abort_without_record_parses_directory_name(
    lifecycle: Lifecycle, staged_album: Path, music: Path
) -> None:
    (staged_album / ".makestage.yaml").unlink()
    staged = lifecycle.load(staged_album)
    assert staged.source == music / "album.cue"
    assert staged.input_name == "in.cue"
    assert staged.recipe == "split"
    lifecycle.abort(staged_album)
    assert (music / "album.cue").exists()


def test_naming_invariant_violation(lifecycle: Lifecycle, tmp_path: Path) -> None:
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    (scratch / "Makefile").write_text("all:\n")
    with pytest.raises(NamingInvariantViolation):
        lifecycle.abort(scratch)
    assert (scratch / "Makefile").exists()


@pytest.mark.parametrize("name", ["scratch", ":album.cue", "split:"])
def test_parse_workdir_name_rejects(name: str) -> None:
    with pytest.raises(NamingInvariantViolation):
        parse_workdir_name(name)


def test_parse_workdir_name() -> None:
    assert parse_workdir_name("to-png:graph.dot") == ("to-png", "graph.dot")


def test_state_and_status(lifecycle: Lifecycle, staged_album: Path, music: Path) -> None:
    assert state_of(music) is State.CLEAN
    assert state_of(staged_album) is State.STAGED
    assert lifecycle.status(music) == {"state": "clean", "path": str(music)}
    status = lifecycle.status(staged_album)
    assert status["state"] == "staged"
    assert status["source"] == str(music / "album.cue")
    assert status["recipe"] == "cue-split"
    assert status["requirements"] == ["tags.txt"]
