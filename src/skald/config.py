"""
Package manager configuration

Resolves every directory the package manager touches, once, from the
environment and the user's home. Everything else receives a Config (or a
PathLayout built from one) instead of computing paths itself, so tests
can point all of it at a temporary root.
"""

import json
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

DEFAULT_REGISTRY_URL = "https://registry.skald.dev"
MODULES_DIR = "skald_modules"


@dataclass
class AuthConfig:
    """Stored registry credentials"""
    username: str
    registry: str
    auth_type: str  # "token" or "basic"
    api_key: str = ""
    password: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuthConfig':
        return cls(
            username=data.get("username", ""),
            registry=data.get("registry", ""),
            auth_type=data.get("auth_type", ""),
            api_key=data.get("api_key", ""),
            password=data.get("password", "")
        )


@dataclass
class Config:
    """Directories and registry settings"""
    home_dir: Path
    packages_dir: Path
    cache_dir: Path
    registry_dir: Path
    shared_dir: Path
    project_root: Path
    registry_url: str = DEFAULT_REGISTRY_URL
    modules_dir: str = MODULES_DIR
    auth_file: Optional[Path] = None
    config_file: Optional[Path] = None

    def __post_init__(self):
        if self.auth_file is None:
            self.auth_file = self.home_dir / "auth.json"
        if self.config_file is None:
            self.config_file = self.home_dir / "config.json"

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        project_root: Optional[Path] = None
    ) -> 'Config':
        """Build configuration from SKALD_* environment variables and defaults"""
        env = os.environ if environ is None else environ

        home = Path(env["SKALD_HOME"]) if env.get("SKALD_HOME") else Path.home() / ".skald"

        config = cls(
            home_dir=home,
            packages_dir=home / "packages",
            cache_dir=home / "cache",
            registry_dir=home / "registry",
            shared_dir=_shared_dir(env),
            project_root=Path(project_root) if project_root else Path.cwd()
        )
        config.registry_url = (
            env.get("SKALD_REGISTRY_URL")
            or config.load_user_config()["registry"].get("url")
            or DEFAULT_REGISTRY_URL
        )
        return config

    def init(self) -> None:
        """Create the per-user directories if missing"""
        for directory in (self.home_dir, self.packages_dir, self.cache_dir, self.registry_dir):
            directory.mkdir(parents=True, exist_ok=True)

    @property
    def local_modules_path(self) -> Path:
        return self.project_root / self.modules_dir

    def cache_path(self, filename: str) -> Path:
        return self.cache_dir / filename

    def load_auth(self) -> Optional[AuthConfig]:
        """Load stored credentials, or None if there are none"""
        if not self.auth_file.exists():
            return None
        with open(self.auth_file, 'r') as f:
            return AuthConfig.from_dict(json.load(f))

    def save_auth(self, auth: AuthConfig) -> None:
        self.auth_file.parent.mkdir(parents=True, exist_ok=True)
        _write_private_json(self.auth_file, asdict(auth))

    def clear_auth(self) -> None:
        try:
            self.auth_file.unlink()
        except FileNotFoundError:
            pass

    def load_user_config(self) -> Dict[str, Any]:
        """Load config.json, filling in defaults for missing sections"""
        data: Dict[str, Any] = {}
        if self.config_file.exists():
            with open(self.config_file, 'r') as f:
                data = json.load(f)

        data.setdefault("registry", {})
        data.setdefault("user", {})
        return data

    def save_user_config(self, data: Dict[str, Any]) -> None:
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        _write_private_json(self.config_file, data)

    def registry_settings(self) -> Dict[str, Any]:
        """Effective registry settings: config file, then environment, then defaults"""
        settings = dict(self.load_user_config()["registry"])
        settings.setdefault("type", "remote")
        settings.setdefault("path", str(self.registry_dir))
        # registry_url already folds in SKALD_REGISTRY_URL
        settings["url"] = self.registry_url
        return settings


def _shared_dir(env: Mapping[str, str]) -> Path:
    if env.get("SKALD_SHARED_DIR"):
        return Path(env["SKALD_SHARED_DIR"])
    if sys.platform == "win32":
        program_data = env.get("ProgramData") or r"C:\ProgramData"
        return Path(program_data) / "Skald" / "lib"
    return Path("/usr/local/share/skald/lib")


def _write_private_json(path: Path, data: Dict[str, Any]) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'w') as f:
        json.dump(data, f, indent=2)
    os.chmod(path, 0o600)
