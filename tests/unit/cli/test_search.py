"""Tests for dossier search."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from dossier.cli.main import app
from dossier.db.models import Role

runner = CliRunner()


@pytest.fixture
def ingested(project: Path, admin_key: str) -> None:
    for name, applicant, text in [
        ("cv.txt", "a-1", "Python developer"),
        ("cv2.txt", "a-2", "Kotlin engineer"),
    ]:
        (project / name).write_text(text, encoding="utf-8")
        result = runner.invoke(
            app, ["ingest", name, "--applicant", applicant, "--api-key", admin_key]
        )
        assert result.exit_code == 0, result.output


def _search(key: str, *args: str):
    return runner.invoke(app, ["search", *args, "--api-key", key])


def test_search_hybrid(ingested, viewer_key: str) -> None:
    result = _search(viewer_key, "Python developer")
    assert result.exit_code == 0, result.output
    assert "cv.txt#0" in result.output
    assert "hybrid" in result.output


def test_search_lexical_with_applicant(ingested, viewer_key: str) -> None:
    result = _search(viewer_key, "engineer", "--mode", "lexical", "--applicant", "a-2")
    assert result.exit_code == 0, result.output
    assert "cv2.txt#0" in result.output
    assert "cv.txt#0" not in result.output


def test_search_no_matches(ingested, viewer_key: str) -> None:
    result = _search(viewer_key, "python", "--applicant", "nobody")
    assert result.exit_code == 0
    assert "No matching chunks" in result.output


def test_search_embedding_unavailable(ingested, viewer_key: str, embedder) -> None:
    embedder.fail_on = {"Rust"}
    result = _search(viewer_key, "Rust")
    assert result.exit_code == 1
    assert "--mode lexical" in result.output


def test_search_invalid_mode(ingested, viewer_key: str) -> None:
    result = _search(viewer_key, "python", "--mode", "semantic")
    assert result.exit_code == 1
    assert "mode must be one of" in result.output


def test_search_inactive_user(make_user, ingested) -> None:
    key = make_user("gone", Role.INACTIVE)
    result = _search(key, "python")
    assert result.exit_code == 1
    assert "Permission denied" in result.output
