"""
Package registry interface for Skald

Supports both local (file-based) and remote (HTTP) registries.
"""

import json
import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Union
from urllib.parse import urlparse

import requests

from . import archive
from .config import AuthConfig
from .errors import RegistryError
from .layout import version_sort_key
from .manifest import Manifest

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
DOWNLOAD_CHUNK_SIZE = 64 * 1024


@dataclass
class PackageInfo:
    """Information about a package version in the registry"""
    name: str
    version: str
    manifest: Manifest
    tarball_url: Optional[str] = None
    published_at: Optional[datetime] = None
    downloads: int = 0

    @property
    def description(self) -> str:
        return self.manifest.description

    @classmethod
    def from_manifest(cls, manifest: Manifest, **kwargs) -> 'PackageInfo':
        return cls(name=manifest.name, version=manifest.version, manifest=manifest, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "name": self.name,
            "version": self.version,
            "manifest": self.manifest.to_dict(),
            "tarball": self.tarball_url,
            "publishedAt": self.published_at.isoformat() if self.published_at else None,
            "downloads": self.downloads
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PackageInfo':
        """Create from dictionary; flat metadata without a manifest is accepted"""
        if "manifest" in data:
            manifest = Manifest.from_dict(data["manifest"])
        else:
            manifest = Manifest.from_dict({
                key: value for key, value in data.items()
                if key in ("name", "version", "description", "authors", "license",
                           "homepage", "repository", "keywords", "dependencies")
            })

        published_at = data.get("publishedAt")
        return cls(
            name=data["name"],
            version=data["version"],
            manifest=manifest,
            tarball_url=data.get("tarball"),
            published_at=datetime.fromisoformat(published_at) if published_at else None,
            downloads=data.get("downloads", 0)
        )


class Registry(ABC):
    """Abstract base class for package registries"""

    @abstractmethod
    def search(self, query: str, limit: int = 20) -> List[PackageInfo]:
        """Search for packages"""
        pass

    @abstractmethod
    def get_package(self, name: str) -> Optional[Dict[str, PackageInfo]]:
        """Get all versions of a package"""
        pass

    @abstractmethod
    def get_package_info(self, name: str, version: str = "latest") -> Optional[PackageInfo]:
        """Get one version of a package; "latest" selects the highest"""
        pass

    @abstractmethod
    def download_package(self, name: str, version: str) -> BinaryIO:
        """Open the package tarball as a binary stream; the caller closes it"""
        pass

    @abstractmethod
    def publish_package(self, archive_path: Path, info: PackageInfo) -> None:
        """Publish a packed archive to the registry"""
        pass

    @abstractmethod
    def health(self) -> None:
        """Raise RegistryError unless the registry is usable"""
        pass


def _latest(versions: Dict[str, PackageInfo]) -> PackageInfo:
    return versions[max(versions, key=version_sort_key)]


class LocalRegistry(Registry):
    """Local file-based registry for development"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.mkdir(parents=True, exist_ok=True)
        self.index_path = self.path / "index.json"
        self.packages_path = self.path / "packages"
        self.packages_path.mkdir(exist_ok=True)

        self.index = self._load_index()

    def _load_index(self) -> Dict[str, Dict[str, PackageInfo]]:
        """Load the package index"""
        if not self.index_path.exists():
            return {}

        with open(self.index_path, 'r') as f:
            data = json.load(f)

        return {
            pkg_name: {
                version: PackageInfo.from_dict(info)
                for version, info in versions.items()
            }
            for pkg_name, versions in data.items()
        }

    def _save_index(self) -> None:
        """Save the package index"""
        data = {
            pkg_name: {version: info.to_dict() for version, info in versions.items()}
            for pkg_name, versions in self.index.items()
        }

        with open(self.index_path, 'w') as f:
            json.dump(data, f, indent=2)

    def _tarball_path(self, name: str, version: str) -> Path:
        return self.packages_path / f"{name}-{version}.tar.gz"

    def search(self, query: str, limit: int = 20) -> List[PackageInfo]:
        """Search for packages by name or description"""
        results = []
        query_lower = query.lower()

        for pkg_name, versions in self.index.items():
            latest = _latest(versions)
            if query_lower in pkg_name.lower():
                results.append(latest)
            elif any(query_lower in info.description.lower() for info in versions.values()):
                results.append(latest)

        return results[:limit]

    def get_package(self, name: str) -> Optional[Dict[str, PackageInfo]]:
        """Get all versions of a package"""
        return self.index.get(name)

    def get_package_info(self, name: str, version: str = "latest") -> Optional[PackageInfo]:
        """Get specific version of a package"""
        versions = self.get_package(name)
        if not versions:
            return None
        if version == "latest":
            return _latest(versions)
        return versions.get(version)

    def download_package(self, name: str, version: str) -> BinaryIO:
        """Open the stored tarball"""
        if self.get_package_info(name, version) is None:
            raise RegistryError(f"package {name}@{version} not found", 404)

        src = self._tarball_path(name, version)
        if not src.exists():
            raise RegistryError(f"tarball not found: {src}", 404)

        return open(src, 'rb')

    def publish_package(self, archive_path: Path, info: PackageInfo) -> None:
        """Copy an archive into the registry and index it"""
        tarball_path = self._tarball_path(info.name, info.version)
        if Path(archive_path).resolve() != tarball_path.resolve():
            shutil.copyfile(archive_path, tarball_path)
        self._index(info, tarball_path)

    def publish_directory(self, package_dir: Union[str, Path]) -> PackageInfo:
        """Pack a package directory and publish it"""
        package_dir = Path(package_dir)
        manifest = Manifest.load(package_dir)

        errors = manifest.validate()
        if errors:
            raise RegistryError(f"invalid manifest: {', '.join(errors)}")

        tarball_path = archive.pack(package_dir, self._tarball_path(manifest.name, manifest.version))
        return self._index(PackageInfo.from_manifest(manifest), tarball_path)

    def _index(self, info: PackageInfo, tarball_path: Path) -> PackageInfo:
        info.tarball_url = tarball_path.as_uri()
        info.published_at = info.published_at or datetime.now()

        self.index.setdefault(info.name, {})[info.version] = info
        self._save_index()

        logger.debug("Indexed %s@%s", info.name, info.version)
        return info

    def health(self) -> None:
        if not self.packages_path.is_dir():
            raise RegistryError(f"local registry missing: {self.path}")


class ResponseStream:
    """File-like reader over a streamed response body

    Transport failures part way through the body are raised as RegistryError.
    """

    def __init__(self, response: requests.Response, chunk_size: int = DOWNLOAD_CHUNK_SIZE):
        self.response = response
        self._chunks = response.iter_content(chunk_size)
        self._buffer = b""
        self._done = False

    def _fill(self, size: int) -> None:
        try:
            while not self._done and (size < 0 or len(self._buffer) < size):
                chunk = next(self._chunks, None)
                if chunk is None:
                    self._done = True
                else:
                    self._buffer += chunk
        except requests.RequestException as e:
            raise RegistryError(f"download interrupted: {e}") from e

    def read(self, size: int = -1) -> bytes:
        self._fill(size)
        if size < 0:
            data, self._buffer = self._buffer, b""
        else:
            data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def close(self) -> None:
        self.response.close()


class RemoteRegistry(Registry):
    """Remote HTTP-based registry"""

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT
    ):
        self.url = url.rstrip('/')
        parsed = urlparse(self.url)
        # API endpoints hang off the host root, whatever path the URL carries
        self.api_url = f"{parsed.scheme}://{parsed.netloc}" if parsed.scheme and parsed.netloc else self.url
        self.timeout = timeout
        self.session = requests.Session()

        if api_key:
            self.set_api_key(api_key)
        elif username and password:
            self.set_basic_auth(username, password)

    def set_api_key(self, api_key: str) -> None:
        self.session.auth = None
        self.session.headers["Authorization"] = f"Bearer {api_key}"

    def set_basic_auth(self, username: str, password: str) -> None:
        self.session.headers.pop("Authorization", None)
        self.session.auth = (username, password)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            return self.session.request(method, f"{self.api_url}{path}", **kwargs)
        except requests.RequestException as e:
            raise RegistryError(f"registry unreachable: {e}") from e

    @staticmethod
    def _check(response: requests.Response, action: str) -> None:
        if response.status_code not in (200, 201):
            raise RegistryError(
                f"{action} failed with status {response.status_code}: {response.text}",
                response.status_code
            )

    def search(self, query: str, limit: int = 20) -> List[PackageInfo]:
        """Search for packages"""
        response = self._request("GET", "/api/search", params={"q": query, "limit": limit})
        self._check(response, "search")

        data = response.json()
        items = data["results"] if isinstance(data, dict) else data
        return [PackageInfo.from_dict(item) for item in items][:limit]

    def get_package(self, name: str) -> Optional[Dict[str, PackageInfo]]:
        """Get all versions of a package"""
        response = self._request("GET", f"/api/package/{name}")
        if response.status_code == 404:
            return None
        self._check(response, f"lookup of {name}")

        return {
            version: PackageInfo.from_dict(data)
            for version, data in response.json()["versions"].items()
        }

    def get_package_info(self, name: str, version: str = "latest") -> Optional[PackageInfo]:
        """Get specific version of a package"""
        response = self._request("GET", f"/api/package/{name}/{version}")
        if response.status_code == 404:
            return None
        self._check(response, f"lookup of {name}@{version}")

        return PackageInfo.from_dict(response.json())

    def download_package(self, name: str, version: str) -> BinaryIO:
        """Stream the package tarball"""
        filename = f"{name}-{version}.tar.gz"
        response = self._request("GET", f"/packages/{name}/{version}/{filename}", stream=True)

        if response.status_code == 404:
            response.close()
            raise RegistryError(f"package {name}@{version} not found", 404)
        if response.status_code != 200:
            body = response.text
            response.close()
            raise RegistryError(
                f"download failed with status {response.status_code}: {body}",
                response.status_code
            )

        return ResponseStream(response)

    def publish_package(self, archive_path: Path, info: PackageInfo) -> None:
        """Upload an archive with its metadata"""
        if "Authorization" not in self.session.headers and self.session.auth is None:
            raise RegistryError("credentials required for publishing (run 'skald login')")

        archive_path = Path(archive_path)
        with open(archive_path, 'rb') as f:
            response = self._request(
                "POST",
                "/api/publish",
                files={"package": (archive_path.name, f, "application/gzip")},
                data={"metadata": json.dumps(info.to_dict())}
            )
        self._check(response, "publish")

    def health(self) -> None:
        response = self._request("GET", "/api/health")
        if response.status_code != 200:
            raise RegistryError(
                f"registry health check failed with status {response.status_code}",
                response.status_code
            )

        try:
            status = response.json().get("status")
        except ValueError as e:
            raise RegistryError("failed to decode health response") from e

        if status != "healthy":
            raise RegistryError(f"registry status: {status}")


def create_registry(settings: Dict[str, Any], auth: Optional[AuthConfig] = None) -> Registry:
    """Create a registry from configuration"""
    registry_type = settings.get("type", "remote")

    if registry_type == "local":
        return LocalRegistry(Path(settings["path"]).expanduser())
    elif registry_type == "remote":
        registry = RemoteRegistry(settings["url"])
        if auth and auth.registry == settings["url"]:
            if auth.auth_type == "token" and auth.api_key:
                registry.set_api_key(auth.api_key)
            elif auth.auth_type == "basic" and auth.password:
                registry.set_basic_auth(auth.username, auth.password)
        return registry
    else:
        raise ValueError(f"Unknown registry type: {registry_type}")
