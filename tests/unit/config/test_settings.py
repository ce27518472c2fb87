"""Tests for envcrypt settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from envcrypt.config.settings import Settings


class TestSettings:
    """Test settings defaults and environment overrides."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.env_dir == Path("envs")
        assert settings.secrets_dir == Path(".secrets")
        assert settings.credential_fields == ["TOKEN_USERNAME", "TOKEN_PASSWORD"]
        assert settings.running_in_ci is False
        assert settings.ci_variable_prefix == "CI_"
        assert settings.log_level == "INFO"

    def test_prefixed_environment_variables(self, monkeypatch):
        monkeypatch.setenv("ENVCRYPT_ENV_DIR", "/srv/envs")
        monkeypatch.setenv("ENVCRYPT_LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)

        assert settings.env_dir == Path("/srv/envs")
        assert settings.log_level == "DEBUG"

    def test_ci_variable_switches_credential_source(self, monkeypatch):
        monkeypatch.setenv("CI", "true")
        assert Settings(_env_file=None).running_in_ci is True

    def test_template_requires_placeholder(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, env_file_template=".env")

    def test_credential_fields_must_not_be_empty(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, credential_fields=[])

    def test_kdf_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, kdf_timeout_seconds=0)

    def test_settings_file(self, tmp_path):
        settings_file = tmp_path / ".envcrypt"
        settings_file.write_text("ENVCRYPT_SECRETS_DIR=/var/lib/envcrypt\n", encoding="utf-8")

        settings = Settings(_env_file=settings_file)

        assert settings.secrets_dir == Path("/var/lib/envcrypt")
