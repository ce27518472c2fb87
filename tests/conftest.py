"""Shared fixtures for envcrypt tests."""

import os
from pathlib import Path

import pytest

from envcrypt.config.settings import Settings
from envcrypt.security.context import SecretContext

UAT_ENV_CONTENT = """# UAT test accounts
API_BASE_URL=https://uat.example.test/api
TOKEN_USERNAME=qa-user@example.test
TOKEN_PASSWORD=S3cr3t-p@ss!

# unrelated
FEATURE_FLAG=on
"""


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep host CI and ENVCRYPT_* variables out of the tests."""
    monkeypatch.delenv("CI", raising=False)
    for name in list(os.environ):
        if name.startswith(("ENVCRYPT_", "CI_")):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary directory, independent of the host environment."""
    env_dir = tmp_path / "envs"
    env_dir.mkdir(exist_ok=True)
    return Settings(
        _env_file=None,
        env_dir=env_dir,
        secrets_dir=tmp_path / ".secrets",
        running_in_ci=False,
        kdf_timeout_seconds=30.0,
    )


@pytest.fixture
def context(settings: Settings):
    """A fresh SecretContext, closed after the test."""
    ctx = SecretContext.from_settings(settings)
    yield ctx
    ctx.close()


@pytest.fixture
def uat_env_file(settings: Settings) -> Path:
    """Environment file for 'uat' holding plaintext credentials."""
    path = settings.env_dir / ".env.uat"
    path.write_text(UAT_ENV_CONTENT, encoding="utf-8")
    return path
