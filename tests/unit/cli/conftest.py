"""Fixtures for CLI tests: an isolated project directory and provisioned users."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from typer.testing import CliRunner

from dossier.auth.directory import IdentityDirectory
from dossier.cli.main import app
from dossier.db.connection import Database
from dossier.db.models import Role


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, embedder) -> Path:
    """Empty project dir as CWD, no global config, fake embedding model."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("dossier.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.setattr("dossier.engine.LiteLLMEmbedder", lambda *args, **kwargs: embedder)
    for var in ("DOSSIER_API_KEY", "DOSSIER_DB", "DOSSIER_EMBEDDING_MODEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DOSSIER_LOG_LEVEL", "WARNING")
    return tmp_path


@pytest.fixture
def initialized(project: Path) -> Path:
    """Project after `dossier init`; returns the database path."""
    result = CliRunner().invoke(app, ["init", str(project)])
    assert result.exit_code == 0, result.output
    return project / ".dossier.db"


@pytest.fixture
def make_user(initialized: Path) -> Callable[[str, Role], str]:
    """Create a user directly in the database and return the API key."""

    def _make(user_id: str, role: Role) -> str:
        db = Database(initialized)
        try:
            directory = IdentityDirectory(db)
            return directory.provision(user_id, f"{user_id}@example.com", role=role).api_key
        finally:
            db.close_all()

    return _make


@pytest.fixture
def admin_key(make_user) -> str:
    return make_user("root", Role.ADMIN)


@pytest.fixture
def viewer_key(make_user) -> str:
    return make_user("reader", Role.VIEWER)
