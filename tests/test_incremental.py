import json
import os
import logging
from collections.abc import Callable
from pathlib import Path

import pytest

import logext_gen
from logext_scanner import ScanError


def _config(tmp_path: Path, *, full: bool = False) -> logext_gen.GenerateConfig:
    return logext_gen.GenerateConfig(
        sources=(tmp_path / "src",),
        output_dir=tmp_path / "out",
        full=full,
    )


def _generated(tmp_path: Path) -> list[str]:
    out = tmp_path / "out"
    return sorted(
        path.relative_to(out).as_posix() for path in out.rglob("*.kt") if path.is_file()
    )


@pytest.fixture
def two_sources(write_kotlin: Callable[[str, str], Path]) -> dict[str, Path]:
    return {
        "shapes": write_kotlin(
            "com/example/Shapes.kt",
            "package com.example\n\nclass Circle\nclass Square {\n    object Unit\n}\n",
        ),
        "util": write_kotlin(
            "com/example/util/Util.kt",
            "package com.example.util\n\ninternal class Helper\nprivate class Hidden\n",
        ),
    }


def test_first_run_generates_every_unit_and_saves_state(
    tmp_path: Path,
    two_sources: dict[str, Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    summary = logext_gen.run_generate(_config(tmp_path))
    output = capsys.readouterr().out

    assert _generated(tmp_path) == [
        "com/example/CircleKotlinLoggingExtensions.kt",
        "com/example/SquareKotlinLoggingExtensions.kt",
        "com/example/Square_UnitKotlinLoggingExtensions.kt",
        "com/example/util/HelperKotlinLoggingExtensions.kt",
    ]
    assert summary.changed_count == 2
    assert summary.units_emitted == 4
    assert summary.skipped == (("private", 1),)
    assert "Scanning: 2 Kotlin sources" in output
    assert "Kotlin logging extensions generated:" in output

    state = json.loads((tmp_path / "out" / logext_gen.STATE_FILE_NAME).read_text("utf-8"))
    assert state["version"] == logext_gen.STATE_FORMAT_VERSION
    shapes = state["files"][logext_gen.source_key(two_sources["shapes"])]
    assert shapes["outputs"] == [
        "com/example/CircleKotlinLoggingExtensions.kt",
        "com/example/SquareKotlinLoggingExtensions.kt",
        "com/example/Square_UnitKotlinLoggingExtensions.kt",
    ]
    assert shapes["digest"] == logext_gen.file_digest(two_sources["shapes"])


def test_second_run_without_changes_scans_nothing(
    tmp_path: Path,
    two_sources: dict[str, Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    logext_gen.run_generate(_config(tmp_path))
    before = _generated(tmp_path)

    summary = logext_gen.run_generate(_config(tmp_path))
    capsys.readouterr()

    assert summary.changed_count == 0
    assert summary.unchanged_count == 2
    assert summary.declarations_seen == 0
    assert summary.units_emitted == 0
    assert _generated(tmp_path) == before


def test_modified_source_replaces_only_its_own_outputs(
    tmp_path: Path,
    two_sources: dict[str, Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    logext_gen.run_generate(_config(tmp_path))
    two_sources["shapes"].write_text(
        "package com.example\n\nclass Circle\nclass Triangle\n", encoding="utf-8"
    )

    summary = logext_gen.run_generate(_config(tmp_path))
    capsys.readouterr()

    assert summary.changed_count == 1
    assert summary.unchanged_count == 1
    assert summary.stale_outputs_removed == 2
    assert summary.units_emitted == 2
    assert summary.units_unchanged == 1
    assert _generated(tmp_path) == [
        "com/example/CircleKotlinLoggingExtensions.kt",
        "com/example/TriangleKotlinLoggingExtensions.kt",
        "com/example/util/HelperKotlinLoggingExtensions.kt",
    ]


def test_removed_source_deletes_its_outputs_and_state_entry(
    tmp_path: Path,
    two_sources: dict[str, Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    logext_gen.run_generate(_config(tmp_path))
    two_sources["util"].unlink()

    summary = logext_gen.run_generate(_config(tmp_path))
    capsys.readouterr()

    assert summary.removed_count == 1
    assert summary.stale_outputs_removed == 1
    assert "com/example/util/HelperKotlinLoggingExtensions.kt" not in _generated(tmp_path)
    state = logext_gen.load_state(tmp_path / "out" / logext_gen.STATE_FILE_NAME)
    assert logext_gen.source_key(two_sources["util"]) not in state.files


def test_full_run_regenerates_everything(
    tmp_path: Path,
    two_sources: dict[str, Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    logext_gen.run_generate(_config(tmp_path))

    summary = logext_gen.run_generate(_config(tmp_path, full=True))
    output = capsys.readouterr().out

    assert summary.changed_count == 2
    assert summary.stale_outputs_removed == 0
    assert summary.units_emitted == 4
    assert summary.units_unchanged == 4
    assert len(_generated(tmp_path)) == 4
    assert "(4 unchanged on disk)" in output
    assert "Stale outputs removed" not in output


def test_full_run_removes_outputs_no_longer_emitted(
    tmp_path: Path,
    two_sources: dict[str, Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    logext_gen.run_generate(_config(tmp_path))
    two_sources["util"].write_text("package com.example.util\n\nprivate class Helper\n", "utf-8")

    summary = logext_gen.run_generate(_config(tmp_path, full=True))
    output = capsys.readouterr().out

    assert summary.stale_outputs_removed == 1
    assert "com/example/util/HelperKotlinLoggingExtensions.kt" not in _generated(tmp_path)
    assert "Stale outputs removed: 1" in output


def test_comment_only_edit_keeps_identical_output_in_place(
    tmp_path: Path,
    two_sources: dict[str, Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    logext_gen.run_generate(_config(tmp_path))
    helper = tmp_path / "out" / "com" / "example" / "util" / "HelperKotlinLoggingExtensions.kt"
    os.utime(helper, (1, 1))
    two_sources["util"].write_text(
        "package com.example.util\n\n// shared helpers\ninternal class Helper\n"
        "private class Hidden\n",
        encoding="utf-8",
    )

    summary = logext_gen.run_generate(_config(tmp_path))
    capsys.readouterr()

    assert summary.changed_count == 1
    assert summary.units_emitted == 1
    assert summary.units_unchanged == 1
    assert summary.stale_outputs_removed == 0
    assert helper.stat().st_mtime == 1


def test_scan_error_leaves_previous_outputs_in_place(
    tmp_path: Path,
    two_sources: dict[str, Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    logext_gen.run_generate(_config(tmp_path))
    before = _generated(tmp_path)
    two_sources["shapes"].write_text('package com.example\n\nval s = "open\n', "utf-8")

    with pytest.raises(ScanError):
        logext_gen.run_generate(_config(tmp_path))
    capsys.readouterr()

    assert _generated(tmp_path) == before


def test_unreadable_state_falls_back_to_full_scan(
    tmp_path: Path,
    two_sources: dict[str, Path],
    capsys: pytest.CaptureFixture[str],
    caplog: pytest.LogCaptureFixture,
) -> None:
    logext_gen.run_generate(_config(tmp_path))
    (tmp_path / "out" / logext_gen.STATE_FILE_NAME).write_text("{not json", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger=logext_gen.LOGGER_NAME):
        summary = logext_gen.run_generate(_config(tmp_path))
    capsys.readouterr()

    assert summary.changed_count == 2
    assert summary.units_unchanged == 4
    assert any("Ignoring unreadable state file" in r.getMessage() for r in caplog.records)


def test_load_state_ignores_unknown_version(tmp_path: Path) -> None:
    state_path = tmp_path / logext_gen.STATE_FILE_NAME
    state_path.write_text(json.dumps({"version": 99, "files": {}}), encoding="utf-8")

    assert logext_gen.load_state(state_path) == logext_gen.BuildState.empty()


def test_save_then_load_state_preserves_records(tmp_path: Path) -> None:
    state = logext_gen.BuildState(
        files={"/src/A.kt": logext_gen.SourceRecord(digest="abc", outputs=("A.kt",))}
    )
    state_path = tmp_path / "nested" / logext_gen.STATE_FILE_NAME

    logext_gen.save_state(state_path, state)

    assert logext_gen.load_state(state_path) == state


def test_remove_stale_outputs_spares_files_emitted_again(tmp_path: Path) -> None:
    out = tmp_path / "out"
    for name in ("A.kt", "B.kt", "C.kt"):
        (out / "pkg").mkdir(parents=True, exist_ok=True)
        (out / "pkg" / name).write_text("x\n", encoding="utf-8")
    previous = logext_gen.BuildState(
        files={
            "/src/One.kt": logext_gen.SourceRecord(digest="1", outputs=("pkg/A.kt", "pkg/B.kt")),
            "/src/Two.kt": logext_gen.SourceRecord(digest="2", outputs=("pkg/C.kt",)),
        }
    )

    removed = logext_gen.remove_stale_outputs(
        out, previous, ["/src/One.kt", "/src/Missing.kt"], keep=[out / "pkg" / "A.kt"]
    )

    assert removed == 1
    assert sorted(p.name for p in (out / "pkg").iterdir()) == ["A.kt", "C.kt"]


def test_partition_sources_splits_changed_unchanged_and_removed(
    write_kotlin: Callable[[str, str], Path],
) -> None:
    kept = write_kotlin("Kept.kt", "class Kept\n")
    edited = write_kotlin("Edited.kt", "class Edited\n")
    previous = logext_gen.BuildState(
        files={
            logext_gen.source_key(kept): logext_gen.SourceRecord(
                digest=logext_gen.file_digest(kept), outputs=()
            ),
            logext_gen.source_key(edited): logext_gen.SourceRecord(digest="stale", outputs=()),
            "/gone/Gone.kt": logext_gen.SourceRecord(digest="x", outputs=()),
        }
    )

    partition = logext_gen.partition_sources([kept, edited], previous)

    assert partition.unchanged == (kept,)
    assert partition.changed == (edited,)
    assert partition.removed == ("/gone/Gone.kt",)


def test_collect_source_files_sorts_and_deduplicates(
    tmp_path: Path,
    write_kotlin: Callable[[str, str], Path],
) -> None:
    b = write_kotlin("pkg/B.kt", "class B\n")
    a = write_kotlin("pkg/A.kt", "class A\n")
    write_kotlin("pkg/notes.txt", "class NotKotlin\n")

    collected = logext_gen.collect_source_files([tmp_path / "src", a])

    assert collected == (a, b)
