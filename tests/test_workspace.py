"""Tests for per-request temp file handling."""

from pathlib import Path

import pytest

from signdesk.storage.workspace import TempWorkspace


def touch_all(workspace: TempWorkspace) -> None:
    for path in workspace.paths:
        path.write_bytes(b"x")


def test_paths_are_distinct_for_the_same_filename(tmp_path: Path):
    first = TempWorkspace(tmp_path, "report.pdf")
    second = TempWorkspace(tmp_path, "report.pdf")

    assert len(set(first.paths) | set(second.paths)) == 6
    assert first.input_path.name.endswith("__report.pdf")
    assert first.prepared_path.name.endswith("__report.prepared.pdf")
    assert first.output_path.name.endswith("__report.signed.pdf")
    assert first.download_name == "report.signed.pdf"


def test_credential_path_only_when_requested(tmp_path: Path):
    assert TempWorkspace(tmp_path, "a.pdf").credential_path is None
    workspace = TempWorkspace(tmp_path, "a.pdf", credential=True)
    assert workspace.credential_path.name.endswith("__signer.pfx")
    assert workspace.credential_path in workspace.paths


def test_unsafe_names_are_sanitised(tmp_path: Path):
    workspace = TempWorkspace(tmp_path, "../../etc/my report (1).pdf")
    assert workspace.input_path.parent == tmp_path
    assert workspace.download_name == "my_report__1_.signed.pdf"


def test_missing_name_and_extension(tmp_path: Path):
    assert TempWorkspace(tmp_path, None).download_name == "document.signed.pdf"
    assert TempWorkspace(tmp_path, "scan").download_name == "scan.signed.pdf"


def test_with_block_removes_every_file(tmp_path: Path):
    with TempWorkspace(tmp_path, "a.pdf", credential=True) as workspace:
        touch_all(workspace)
    assert list(tmp_path.iterdir()) == []


def test_exception_still_cleans_up(tmp_path: Path):
    with pytest.raises(RuntimeError):
        with TempWorkspace(tmp_path, "a.pdf") as workspace:
            touch_all(workspace)
            workspace.detach()
            raise RuntimeError("mid-pipeline failure")
    assert list(tmp_path.iterdir()) == []


def test_detached_workspace_is_left_for_the_caller(tmp_path: Path):
    with TempWorkspace(tmp_path, "a.pdf") as workspace:
        touch_all(workspace)
        workspace.detach()
    assert workspace.output_path.exists()

    workspace.cleanup()
    assert list(tmp_path.iterdir()) == []


def test_cleanup_ignores_missing_and_undeletable_paths(tmp_path: Path):
    workspace = TempWorkspace(tmp_path, "a.pdf")
    workspace.output_path.mkdir()
    workspace.cleanup()
    workspace.cleanup()
    assert workspace.output_path.is_dir()
