# Safekeep Configuration
#
# Immutable configuration passed explicitly into every backend, crypto
# client, safe and loader. Nothing reads process-global settings after
# Config.load() has returned.
#
# Sources, lowest to highest precedence:
#   1. Built-in defaults (dataclass fields below)
#   2. TOML file: $SAFEKEEP_CONFIG or ~/.safekeep.toml
#   3. Environment variables (a .env file is loaded by the CLI via python-dotenv)

import logging
import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidConfiguration

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.safekeep.toml"
DEFAULT_SAFE_PATH = "~/.safekeep.safe"
DEFAULT_S3_KEY = "safekeep.safe"
DEFAULT_AUDIT_DIR = "~/.safekeep/audit"

STORAGE_KINDS = ("file", "s3", "object-store")
CIPHERS = ("aes-256-gcm", "chacha20-poly1305")
KDFS = ("pbkdf2-sha256", "scrypt")

# Environment variable -> (section, field)
ENV_OVERRIDES = {
    "SAFEKEEP_STORAGE": ("storage", "kind"),
    "SAFEKEEP_SAFE_PATH": ("storage", "path"),
    "SAFEKEEP_S3_BUCKET": ("storage", "bucket"),
    "SAFEKEEP_S3_KEY": ("storage", "key"),
    "SAFEKEEP_AUDIT_DIR": ("general", "audit_dir"),
}


@dataclass(frozen=True)
class StorageConfig:
    """Where the encrypted safe lives."""
    kind: str = "file"
    # file backend
    path: str = DEFAULT_SAFE_PATH
    backup: bool = False
    # s3 backend
    bucket: Optional[str] = None
    key: str = DEFAULT_S3_KEY
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    profile: Optional[str] = None

    def __post_init__(self):
        if self.kind not in STORAGE_KINDS:
            raise InvalidConfiguration(
                f"Unsupported storage kind: {self.kind} (expected one of {', '.join(STORAGE_KINDS)})"
            )
        if self.kind in ("s3", "object-store") and not self.bucket:
            raise InvalidConfiguration("storage.bucket is required for the s3 backend")
        if not self.key:
            raise InvalidConfiguration("storage.key must not be empty")


@dataclass(frozen=True)
class EncryptionConfig:
    """Algorithm and KDF parameters. Never holds key material."""
    cipher: str = "aes-256-gcm"
    kdf: str = "pbkdf2-sha256"
    pbkdf2_iterations: int = 600_000  # OWASP 2023 for PBKDF2-SHA256
    scrypt_n: int = 2**15
    scrypt_r: int = 8
    scrypt_p: int = 1

    def __post_init__(self):
        if self.cipher not in CIPHERS:
            raise InvalidConfiguration(f"Unsupported cipher: {self.cipher}")
        if self.kdf not in KDFS:
            raise InvalidConfiguration(f"Unsupported kdf: {self.kdf}")
        if self.pbkdf2_iterations < 1:
            raise InvalidConfiguration("encryption.pbkdf2_iterations must be positive")
        if self.scrypt_n < 2 or self.scrypt_n & (self.scrypt_n - 1):
            raise InvalidConfiguration("encryption.scrypt_n must be a power of 2 greater than 1")
        if self.scrypt_r < 1 or self.scrypt_p < 1:
            raise InvalidConfiguration("encryption.scrypt_r and scrypt_p must be positive")


@dataclass(frozen=True)
class GeneralConfig:
    password_length: int = 20
    unlock_retries: int = 0
    audit_dir: str = DEFAULT_AUDIT_DIR

    def __post_init__(self):
        if self.password_length < 1:
            raise InvalidConfiguration("general.password_length must be positive")
        if self.unlock_retries < 0:
            raise InvalidConfiguration("general.unlock_retries must not be negative")


@dataclass(frozen=True)
class Config:
    """Validated, immutable safekeep configuration."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    encryption: EncryptionConfig = field(default_factory=EncryptionConfig)
    general: GeneralConfig = field(default_factory=GeneralConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """Build a Config from a parsed TOML document.

        Raises:
            InvalidConfiguration: On unknown sections/keys or invalid values.
        """
        sections = {
            "storage": StorageConfig,
            "encryption": EncryptionConfig,
            "general": GeneralConfig,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise InvalidConfiguration(f"Unknown config section(s): {', '.join(sorted(unknown))}")

        built: Dict[str, Any] = {}
        for name, section_cls in sections.items():
            values = data.get(name, {})
            if not isinstance(values, Mapping):
                raise InvalidConfiguration(f"Config section [{name}] must be a table")
            allowed = {f.name for f in fields(section_cls)}
            bad = set(values) - allowed
            if bad:
                raise InvalidConfiguration(
                    f"Unknown key(s) in [{name}]: {', '.join(sorted(bad))}"
                )
            try:
                built[name] = section_cls(**values)
            except TypeError as exc:
                raise InvalidConfiguration(f"Invalid [{name}] section: {exc}") from exc
        return cls(**built)

    @classmethod
    def load(
        cls,
        path: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Config":
        """Load configuration from file and environment.

        Args:
            path: Explicit config file. Defaults to $SAFEKEEP_CONFIG or
                  ~/.safekeep.toml; a missing default file means "use defaults".
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Config instance
        """
        environ = os.environ if environ is None else environ
        explicit = path or environ.get("SAFEKEEP_CONFIG")
        config_path = Path(explicit or DEFAULT_CONFIG_PATH).expanduser()

        data: Dict[str, Any] = {}
        if config_path.exists():
            try:
                with open(config_path, "rb") as f:
                    data = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as exc:
                raise InvalidConfiguration(f"Unable to read config {config_path}: {exc}") from exc
            logger.debug("Loaded config from %s", config_path)
        elif explicit:
            raise InvalidConfiguration(f"Config file not found: {config_path}")

        config = cls.from_dict(data)
        return config.with_env_overrides(environ)

    def with_env_overrides(self, environ: Mapping[str, str]) -> "Config":
        """Return a copy with SAFEKEEP_* environment overrides applied."""
        overrides: Dict[str, Dict[str, str]] = {}
        for var, (section, name) in ENV_OVERRIDES.items():
            value = environ.get(var)
            if value:
                overrides.setdefault(section, {})[name] = value
        if not overrides:
            return self

        updated = {}
        for section, values in overrides.items():
            # Re-run validation through __post_init__
            updated[section] = replace(getattr(self, section), **values)
        return replace(self, **updated)
