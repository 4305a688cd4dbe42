import os
from pathlib import Path

import pytest


@pytest.fixture
def write_file(tmp_path):
    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def out_dir(tmp_path) -> Path:
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep user .env files and HEADERIFY_* variables out of the tests."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("HEADERIFY_"):
            monkeypatch.delenv(key)
