"""Pytest configuration and fixtures for impact-selector tests."""

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, Generator

import pytest

from impact_selector.config_manager import SelectorSettings

_GIT_ENV = {
    "GIT_AUTHOR_NAME": "Test Author",
    "GIT_AUTHOR_EMAIL": "author@example.com",
    "GIT_COMMITTER_NAME": "Test Author",
    "GIT_COMMITTER_EMAIL": "author@example.com",
    "GIT_CONFIG_NOSYSTEM": "1",
}


class GitRepo:
    """Throwaway repository driven through the git executable."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.git("init", "-q")

    def git(self, *args: str) -> str:
        proc = subprocess.run(
            ["git", "-c", "commit.gpgsign=false", *args],
            cwd=self.root,
            env={**os.environ, **_GIT_ENV},
            check=True,
            capture_output=True,
            text=True,
        )
        return proc.stdout.strip()

    def write(self, files: Dict[str, str]) -> None:
        for rel, content in files.items():
            path = self.root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

    def remove(self, *paths: str) -> None:
        self.git("rm", "-q", *paths)

    def commit(self, message: str, files: Dict[str, str] = None) -> str:
        if files:
            self.write(files)
        self.git("add", "-A")
        self.git("commit", "-q", "--allow-empty", "-m", message)
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def git_repo(temp_dir: Path) -> GitRepo:
    """Empty git repository in a temporary directory."""
    repo_dir = temp_dir / "repo"
    repo_dir.mkdir()
    return GitRepo(repo_dir)


@pytest.fixture(autouse=True)
def _isolated_home(temp_dir: Path, monkeypatch):
    """Keep tests away from the real ~/.impact-selector/config.toml."""
    monkeypatch.setattr("impact_selector.config.GLOBAL_CONFIG_FILE", temp_dir / "home" / "config.toml")


@pytest.fixture
def settings() -> SelectorSettings:
    return SelectorSettings()


@pytest.fixture
def auth_source() -> str:
    return '''export function login(user: string, password: string): boolean {
  return password.length > 3;
}
'''


@pytest.fixture
def login_spec_source() -> str:
    """Three tests; 'shows error on bad password' spans lines 8-11."""
    return '''import { test, expect } from '@playwright/test';
import { login } from './auth';

test('logs in with valid credentials', async () => {
  expect(login('alice', 'secret')).toBe(true);
});

test('shows error on bad password', async () => {
  const ok = login('alice', 'x');
  expect(ok).toBe(false);
});

test(`handles user ${'bob'}`, async () => {
  expect(login('bob', 'secret')).toBe(true);
});
'''
