"""
Secure storage of per-environment credential and secret-key files.

Environment files are plain ``KEY=VALUE`` dotenv files that may be shared or
committed; secret-key files live in a separate secret store directory and are
never meant to leave the machine. Every write goes through an atomic replace:
a temporary file in the target directory is written, flushed, fsynced and then
renamed over the original, so a crash never leaves a truncated file behind.
"""

import io
import os
import re
import stat
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Union

from dotenv import dotenv_values
from dotenv.parser import parse_stream
from pydantic import ValidationError
from structlog import get_logger

from ..core.error_handling import (
    FileAccessError,
    InvalidEnvironmentError,
    MissingFieldError,
)
from .models import EnvironmentPaths, SecretKeyRecord

logger = get_logger(__name__)

PathLike = Union[str, Path]

ENVIRONMENT_NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

# Head of a KEY=VALUE binding: leading whitespace, optional "export", key, "="
ASSIGNMENT_PATTERN = re.compile(
    r"^(?P<prefix>\s*(?:export[^\S\r\n]+)?)(?P<key>[A-Za-z_][A-Za-z0-9_.]*)(?P<sep>[^\S\r\n]*=[^\S\r\n]*)"
)

# Values that can be written without quoting
BARE_VALUE_PATTERN = re.compile(r"^[A-Za-z0-9_\-.:/+=@,%]*$")

FILE_PERMISSIONS = 0o600  # Read/write for owner only
DIRECTORY_PERMISSIONS = 0o700  # Read/write/execute for owner only

SECRET_FILE_HEADER = (
    "Secret key for environment '{environment}'.\n"
    "Generated by envcrypt. Do NOT commit or share this file:\n"
    "regenerating it invalidates every value encrypted under it."
)

def quote_value(value: str) -> str:
    """Render a value so that python-dotenv reads it back unchanged."""
    if BARE_VALUE_PATTERN.match(value):
        return value
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def _rewrite_binding(text: str, key: str, value: str) -> str:
    """Replace the value of one parsed binding, keeping its prefix and line ending."""
    line_ending = text[len(text.rstrip("\r\n")):]
    match = ASSIGNMENT_PATTERN.match(text)
    if match and match.group("key") == key:
        head = f"{match.group('prefix')}{key}{match.group('sep')}"
    else:
        head = f"{text[:len(text) - len(text.lstrip())]}{key}="
    return f"{head}{quote_value(value)}{line_ending}"


class SecretFileManager:
    """Reads and atomically writes environment and secret-key files."""

    def __init__(
        self,
        env_dir: PathLike,
        secrets_dir: PathLike,
        env_file_template: str = ".env.{environment}",
        secret_file_template: str = ".secret.{environment}",
    ) -> None:
        self.env_dir = Path(env_dir).expanduser()
        self.secrets_dir = Path(secrets_dir).expanduser()
        self.env_file_template = env_file_template
        self.secret_file_template = secret_file_template

    # ------------------------------------------------------------------
    # Location
    # ------------------------------------------------------------------

    @staticmethod
    def validate_environment(environment: str) -> str:
        """Reject environment names that could escape the storage directories."""
        if not isinstance(environment, str) or not ENVIRONMENT_NAME_PATTERN.fullmatch(environment):
            raise InvalidEnvironmentError(str(environment))
        return environment

    def locate(self, environment: str) -> EnvironmentPaths:
        """Return the environment file and secret-key file paths for an environment."""
        self.validate_environment(environment)
        return EnvironmentPaths(
            environment=environment,
            env_file=self.env_dir / self.env_file_template.format(environment=environment),
            secret_file=self.secrets_dir / self.secret_file_template.format(environment=environment),
        )

    # ------------------------------------------------------------------
    # Generic KEY=VALUE files
    # ------------------------------------------------------------------

    def read(self, path: PathLike) -> Dict[str, str]:
        """
        Parse a KEY=VALUE file into an ordered mapping.

        Raises:
            FileAccessError: If the file is missing or unreadable
        """
        path = Path(path)
        if not path.is_file():
            raise FileAccessError(f"File not found: {path}", path=str(path))
        if not os.access(path, os.R_OK):
            raise FileAccessError(f"File is not readable: {path}", path=str(path))

        try:
            values = dotenv_values(path, encoding="utf-8", interpolate=False)
        except (OSError, UnicodeDecodeError) as e:
            raise FileAccessError(f"Failed to read {path}: {e}", path=str(path)) from e

        return {key: "" if value is None else value for key, value in values.items()}

    def write(
        self,
        path: PathLike,
        values: Mapping[str, str],
        header: Optional[str] = None,
        mode: int = FILE_PERMISSIONS,
    ) -> None:
        """
        Atomically replace a KEY=VALUE file with the given mapping.

        Args:
            path: Target file; its parent directory must already exist
            values: Ordered mapping to serialize
            header: Optional comment block written above the values
            mode: Permission bits for the new file
        """
        lines = []
        if header:
            lines.extend(f"# {line}".rstrip() for line in header.splitlines())
        lines.extend(f"{key}={quote_value(str(value))}" for key, value in values.items())
        self._atomic_write(Path(path), "\n".join(lines) + "\n", mode)

    def update(self, path: PathLike, updates: Mapping[str, str]) -> None:
        """
        Atomically rewrite selected keys of an existing file.

        The file is split into bindings by python-dotenv's own parser, so a
        quoted value spanning several lines is replaced as a whole and text
        inside another key's value is never mistaken for an assignment.
        Comments, blank lines, ordering and every other binding are preserved
        byte-for-byte; the file keeps its current permission bits.

        Raises:
            FileAccessError: If the file cannot be read or replaced
            MissingFieldError: If a key to update is not present in the file
        """
        path = Path(path)
        if not path.is_file():
            raise FileAccessError(f"File not found: {path}", path=str(path))

        try:
            with open(path, "r", encoding="utf-8", newline="") as handle:
                original = handle.read()
            current_mode = stat.S_IMODE(path.stat().st_mode)
        except (OSError, UnicodeDecodeError) as e:
            raise FileAccessError(f"Failed to read {path}: {e}", path=str(path)) from e

        seen = set()
        rewritten = []
        for binding in parse_stream(io.StringIO(original)):
            text = binding.original.string
            # Every occurrence is rewritten; dotenv lets a later duplicate win
            if not binding.error and binding.key in updates:
                seen.add(binding.key)
                rewritten.append(_rewrite_binding(text, binding.key, updates[binding.key]))
            else:
                rewritten.append(text)

        missing = sorted(set(updates) - seen)
        if missing:
            raise MissingFieldError(
                f"Keys not present in {path.name}: {', '.join(missing)}",
                field=missing[0],
            )

        self._atomic_write(path, "".join(rewritten), current_mode)

    def _atomic_write(self, path: Path, content: str, mode: int) -> None:
        directory = path.parent
        if not directory.is_dir():
            raise FileAccessError(f"Directory does not exist: {directory}", path=str(directory))

        temp_path: Optional[str] = None
        try:
            fd, temp_path = tempfile.mkstemp(
                dir=str(directory), prefix=f".{path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            if os.name == "posix":
                os.chmod(temp_path, mode)
            os.replace(temp_path, path)
            temp_path = None
        except OSError as e:
            raise FileAccessError(f"Failed to write {path}: {e}", path=str(path)) from e
        finally:
            if temp_path is not None:
                try:
                    os.unlink(temp_path)
                except FileNotFoundError:
                    pass

        logger.debug("Wrote file atomically", path=str(path), file_mode=oct(mode))

    # ------------------------------------------------------------------
    # Secret-key records
    # ------------------------------------------------------------------

    def ensure_secret_store(self) -> Path:
        """Create the secret store directory with owner-only permissions."""
        try:
            self.secrets_dir.mkdir(parents=True, exist_ok=True)
            if os.name == "posix":
                os.chmod(self.secrets_dir, DIRECTORY_PERMISSIONS)
        except OSError as e:
            raise FileAccessError(
                f"Cannot create secret store {self.secrets_dir}: {e}",
                path=str(self.secrets_dir),
            ) from e
        return self.secrets_dir

    def has_secret_record(self, environment: str) -> bool:
        return self.locate(environment).secret_file.is_file()

    def read_secret_record(self, environment: str) -> Optional[SecretKeyRecord]:
        """
        Load the secret key of an environment.

        Returns:
            The record, or None when no key file exists for the environment

        Raises:
            FileAccessError: If the key file exists but cannot be read or parsed
        """
        secret_file = self.locate(environment).secret_file
        if not secret_file.exists():
            return None

        values = self.read(secret_file)
        missing = [name for name in ("SECRET_KEY", "KDF_SALT") if not values.get(name)]
        if missing:
            raise FileAccessError(
                f"Secret file {secret_file.name} is missing {', '.join(missing)}",
                path=str(secret_file),
            )

        stored_environment = values.get("ENVIRONMENT") or environment
        if stored_environment != environment:
            raise FileAccessError(
                f"Secret file {secret_file.name} belongs to environment '{stored_environment}'",
                path=str(secret_file),
            )

        try:
            created_at = (
                datetime.fromisoformat(values["CREATED_AT"]) if values.get("CREATED_AT") else None
            )
            record_data = {
                "environment": environment,
                "encoded_key": values["SECRET_KEY"],
                "salt": values["KDF_SALT"],
            }
            if created_at is not None:
                record_data["created_at"] = created_at
            return SecretKeyRecord(**record_data)
        except (ValidationError, ValueError) as e:
            raise FileAccessError(
                f"Secret file {secret_file.name} is corrupt: {e.__class__.__name__}",
                path=str(secret_file),
            ) from e

    def write_secret_record(self, record: SecretKeyRecord) -> Path:
        """Persist a secret key, replacing any previous key of the environment."""
        self.ensure_secret_store()
        secret_file = self.locate(record.environment).secret_file
        self.write(
            secret_file,
            {
                "ENVIRONMENT": record.environment,
                "SECRET_KEY": record.encoded_key,
                "KDF_SALT": record.salt,
                "CREATED_AT": record.created_at.isoformat(),
            },
            header=SECRET_FILE_HEADER.format(environment=record.environment),
            mode=FILE_PERMISSIONS,
        )
        logger.info(
            "Persisted secret key",
            environment=record.environment,
            key_fingerprint=record.fingerprint,
            path=str(secret_file),
        )
        return secret_file

    def designated_values(self, values: Mapping[str, str], fields: Iterable[str]) -> Dict[str, str]:
        """Pick the designated fields out of a parsed file, failing on absent ones."""
        selected = {}
        for name in fields:
            if name not in values:
                raise MissingFieldError(f"Field '{name}' is not defined", field=name)
            selected[name] = values[name]
        return selected
