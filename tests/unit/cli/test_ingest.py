"""Tests for dossier ingest."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from dossier.cli.main import app

runner = CliRunner()


def _write(project: Path, name: str, text: str) -> Path:
    path = project / name
    path.write_text(text, encoding="utf-8")
    return path


def _ingest(key: str, *paths: Path, applicant: str = "a-1042"):
    return runner.invoke(
        app, ["ingest", *map(str, paths), "--applicant", applicant, "--api-key", key]
    )


def test_ingest_reports_chunks(project: Path, admin_key: str) -> None:
    cv = _write(project, "cv.txt", "Python developer.\n\nTen years of Go.")
    result = _ingest(admin_key, cv)
    assert result.exit_code == 0, result.output
    assert "cv.txt" in result.output
    assert "file 1000" in result.output
    assert "0 failed" in result.output


def test_ingest_several_files(project: Path, admin_key: str) -> None:
    a = _write(project, "cv.txt", "Python developer.")
    b = _write(project, "letter.md", "I would like to apply.")
    result = _ingest(admin_key, a, b)
    assert result.exit_code == 0, result.output
    assert "file 1000" in result.output
    assert "file 1001" in result.output


def test_ingest_unchanged_file_is_noop(project: Path, admin_key: str) -> None:
    cv = _write(project, "cv.txt", "Python developer.")
    _ingest(admin_key, cv)
    result = _ingest(admin_key, cv)
    assert result.exit_code == 0, result.output
    assert "file 1000" in result.output


def test_ingest_changed_file_replaces(project: Path, admin_key: str) -> None:
    cv = _write(project, "cv.txt", "Python developer.")
    _ingest(admin_key, cv)
    cv.write_text("Rust developer.", encoding="utf-8")
    result = _ingest(admin_key, cv)
    assert result.exit_code == 0, result.output
    assert "file 1001" in result.output


def test_ingest_reports_failed_chunks(project: Path, admin_key: str, embedder) -> None:
    embedder.fail_on = {"Go"}
    cv = _write(project, "cv.txt", "Ten years of Go.")
    result = _ingest(admin_key, cv)
    assert result.exit_code == 0, result.output
    assert "1 failed" in result.output
    assert "dossier retry --file-id 1000" in result.output


def test_ingest_skips_binary_file(project: Path, admin_key: str) -> None:
    blob = project / "photo.jpg"
    blob.write_bytes(b"\xff\xd8\xff\xe0\x00")
    cv = _write(project, "cv.txt", "Python developer.")
    result = _ingest(admin_key, blob, cv)
    assert result.exit_code == 0, result.output
    assert "not UTF-8" in result.output
    assert "file 1000" in result.output


def test_ingest_empty_file_rejected(project: Path, admin_key: str) -> None:
    empty = _write(project, "empty.txt", "")
    result = _ingest(admin_key, empty)
    assert result.exit_code == 1
    assert "content must not be empty" in result.output


def test_ingest_requires_api_key(project: Path, initialized: Path) -> None:
    cv = _write(project, "cv.txt", "Python developer.")
    result = runner.invoke(app, ["ingest", str(cv), "--applicant", "a-1042"])
    assert result.exit_code == 1
    assert "DOSSIER_API_KEY" in result.output


def test_ingest_key_from_environment(project: Path, admin_key: str, monkeypatch) -> None:
    monkeypatch.setenv("DOSSIER_API_KEY", admin_key)
    cv = _write(project, "cv.txt", "Python developer.")
    result = runner.invoke(app, ["ingest", str(cv), "--applicant", "a-1042"])
    assert result.exit_code == 0, result.output


def test_ingest_viewer_forbidden(project: Path, viewer_key: str) -> None:
    cv = _write(project, "cv.txt", "Python developer.")
    result = _ingest(viewer_key, cv)
    assert result.exit_code == 1
    assert "Permission denied" in result.output


def test_ingest_unknown_key(project: Path, initialized: Path) -> None:
    cv = _write(project, "cv.txt", "Python developer.")
    result = _ingest("not-a-key", cv)
    assert result.exit_code == 1
    assert "Unknown API key" in result.output
