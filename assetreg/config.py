# assetreg/config.py
"""
Service configuration.

Sources, lowest to highest precedence:
    1. Defaults on Config
    2. YAML file (e.g., assetreg.yaml)
    3. ASSETREG_* environment variables (ASSETREG_PORT=9000, ...)
    4. Command-line flags (applied by the CLI via with_overrides)

Example YAML:
    data_dir: /var/lib/assetreg
    port: 8080
    max_upload_bytes: 52428800
    ipfs_api_url: http://127.0.0.1:5001
    strict_cids: true
    actor: alice
"""

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from .activitypub import DOMAIN

ENV_PREFIX = "ASSETREG_"


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def _optional(convert: Callable[[str], Any]) -> Callable[[str], Any]:
    def parse(value: str):
        return None if value.strip().lower() in ("", "none", "null") else convert(value)
    return parse


@dataclass
class Config:
    """
    Settings for the registration service.

    Attributes:
        data_dir: Root for the registration log, local blobs and actors
        host: HTTP bind address
        port: HTTP port
        max_upload_bytes: Largest blob accepted for upload (None = no limit)
        ipfs_api_url: IPFS RPC URL; when unset blobs go to a local store
        upload_timeout: Seconds to wait on the content store
        strict_cids: Reject strings that are not CIDv0/CIDv1 syntax
        actor: Username of the actor that signs registration events
        domain: Domain for actor and activity IDs
    """
    data_dir: Path = Path("./assetreg-data")
    host: str = "127.0.0.1"
    port: int = 8080
    max_upload_bytes: Optional[int] = 50 * 1024 * 1024
    ipfs_api_url: Optional[str] = None
    upload_timeout: float = 60.0
    strict_cids: bool = False
    actor: Optional[str] = None
    domain: str = DOMAIN

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)

    @property
    def log_path(self) -> Path:
        return self.data_dir / "registrations.jsonl"

    @property
    def blobs_dir(self) -> Path:
        return self.data_dir / "blobs"

    @property
    def actors_dir(self) -> Path:
        return self.data_dir / "actors"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "Config":
        data = yaml.safe_load(yaml_content) or {}
        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: Path | str) -> "Config":
        with open(path, "r") as f:
            return cls.from_yaml(f.read())

    def with_env(self, environ: Mapping[str, str] = None) -> "Config":
        """Return a copy with ASSETREG_* variables applied."""
        environ = os.environ if environ is None else environ
        parsers: Dict[str, Callable[[str], Any]] = {
            "data_dir": Path,
            "host": str,
            "port": int,
            "max_upload_bytes": _optional(int),
            "ipfs_api_url": _optional(str),
            "upload_timeout": float,
            "strict_cids": _parse_bool,
            "actor": _optional(str),
            "domain": str,
        }
        changes = {}
        for name, parse in parsers.items():
            key = ENV_PREFIX + name.upper()
            if key in environ:
                try:
                    changes[name] = parse(environ[key])
                except ValueError as e:
                    raise ValueError(f"Invalid {key}: {e}") from e
        return dataclasses.replace(self, **changes)

    def with_overrides(self, **overrides) -> "Config":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)


def load_config(path: Path | str = None, environ: Mapping[str, str] = None) -> Config:
    """Load defaults, then the YAML file (if any), then the environment."""
    config = Config.from_file(path) if path else Config()
    return config.with_env(environ)
