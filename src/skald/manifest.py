"""
Package manifest handling for Skald packages

A manifest (skald.json) describes a package and its dependencies.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import InvalidConstraintError, InvalidVersionError, ManifestError
from .version import Constraint, Version, parse_constraint

MANIFEST_FILE = "skald.json"


@dataclass
class Dependency:
    """Represents a package dependency"""
    name: str
    version_spec: str = "*"  # Constraint expression, see version.parse_constraint
    dev: bool = False  # Development dependency

    def constraint(self) -> Constraint:
        """Parse the version spec, naming this dependency on failure"""
        try:
            return parse_constraint(self.version_spec)
        except InvalidConstraintError as e:
            raise InvalidConstraintError(
                self.version_spec, f"dependency {self.name}"
            ) from e

    def matches_version(self, version: Union[str, Version]) -> bool:
        """Check if a version satisfies this dependency"""
        if isinstance(version, str):
            version = Version.parse(version)
        return self.constraint().satisfies(version)

    def to_dict(self) -> Union[str, Dict[str, Any]]:
        """Convert to JSON form (a bare string unless flagged dev)"""
        if self.dev:
            return {"version": self.version_spec, "dev": True}
        return self.version_spec

    @classmethod
    def from_dict(cls, name: str, data: Union[str, Dict[str, Any]]) -> 'Dependency':
        """Create from a version string or {"version": ...} object"""
        if isinstance(data, str):
            return cls(name=name, version_spec=data)

        return cls(
            name=name,
            version_spec=data.get("version", "*"),
            dev=data.get("dev", False)
        )


@dataclass
class Manifest:
    """Package manifest (skald.json)"""
    name: str
    version: str
    description: str = ""
    authors: List[str] = field(default_factory=list)
    license: str = "MIT"
    homepage: Optional[str] = None
    repository: Optional[str] = None
    keywords: List[str] = field(default_factory=list)

    main: Optional[str] = "src/main.sk"

    dependencies: Dict[str, Dependency] = field(default_factory=dict)
    dev_dependencies: Dict[str, Dependency] = field(default_factory=dict)

    include: List[str] = field(default_factory=lambda: ["src/**/*.sk", "README.md", "LICENSE"])
    exclude: List[str] = field(default_factory=lambda: ["tests/**", "*.log"])

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'Manifest':
        """Load manifest from a skald.json file or the directory holding one"""
        path = Path(path)
        manifest_path = path / MANIFEST_FILE if path.is_dir() else path

        if not manifest_path.exists():
            raise FileNotFoundError(f"No {MANIFEST_FILE} found at {manifest_path}")

        try:
            with open(manifest_path, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ManifestError(str(manifest_path), str(e)) from e

        if not isinstance(data, dict):
            raise ManifestError(str(manifest_path), "top level must be an object")

        try:
            return cls.from_dict(data)
        except KeyError as e:
            raise ManifestError(str(manifest_path), f"missing field {e}") from e

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Manifest':
        """Create manifest from dictionary"""
        deps = {}
        for name, dep_data in data.get("dependencies", {}).items():
            deps[name] = Dependency.from_dict(name, dep_data)

        dev_deps = {}
        for name, dep_data in data.get("devDependencies", {}).items():
            dep = Dependency.from_dict(name, dep_data)
            dep.dev = True
            dev_deps[name] = dep

        authors = data.get("authors", [])
        if isinstance(authors, str):
            authors = [authors]

        return cls(
            name=data["name"],
            version=data["version"],
            description=data.get("description", ""),
            authors=authors,
            license=data.get("license", "MIT"),
            homepage=data.get("homepage"),
            repository=data.get("repository"),
            keywords=data.get("keywords", []),
            main=data.get("main"),
            dependencies=deps,
            dev_dependencies=dev_deps,
            include=data.get("include", cls.__dataclass_fields__["include"].default_factory()),
            exclude=data.get("exclude", cls.__dataclass_fields__["exclude"].default_factory())
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        data: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "authors": self.authors,
            "license": self.license
        }

        if self.homepage:
            data["homepage"] = self.homepage
        if self.repository:
            data["repository"] = self.repository
        if self.keywords:
            data["keywords"] = self.keywords
        if self.main:
            data["main"] = self.main

        data["dependencies"] = {
            name: dep.to_dict() for name, dep in self.dependencies.items()
        }
        data["devDependencies"] = {
            # dev is implied by the section
            name: dep.version_spec for name, dep in self.dev_dependencies.items()
        }

        data["include"] = self.include
        data["exclude"] = self.exclude

        return data

    def save(self, path: Union[str, Path]) -> Path:
        """Save manifest to a skald.json file (or into a directory)"""
        path = Path(path)
        manifest_path = path / MANIFEST_FILE if path.is_dir() else path

        with open(manifest_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
            f.write("\n")

        return manifest_path

    def validate(self) -> List[str]:
        """Validate manifest and return list of errors"""
        errors = []

        if not self.name:
            errors.append("Package name is required")
        elif not self.name.replace("-", "").replace("_", "").isalnum():
            errors.append("Package name must be alphanumeric with hyphens/underscores")

        if not self.version:
            errors.append("Package version is required")
        else:
            try:
                Version.parse(self.version)
            except InvalidVersionError:
                errors.append(f"Invalid version format: {self.version} (expected X.Y.Z)")

        if self.main and not self.main.endswith(".sk"):
            errors.append(f"Main entry point must be a .sk file: {self.main}")

        for name, dep in self.get_all_dependencies(include_dev=True).items():
            if name == self.name:
                errors.append("Package cannot depend on itself")
            try:
                dep.constraint()
            except InvalidConstraintError as e:
                errors.append(str(e))

        return errors

    def get_all_dependencies(self, include_dev: bool = False) -> Dict[str, Dependency]:
        """Get all dependencies; dev entries override runtime ones of the same name"""
        deps = self.dependencies.copy()
        if include_dev:
            deps.update(self.dev_dependencies)
        return deps

    def dependency_constraints(self, include_dev: bool = False) -> Dict[str, Constraint]:
        """Parsed constraints keyed by dependency name"""
        return {
            name: dep.constraint()
            for name, dep in self.get_all_dependencies(include_dev).items()
        }


def init_manifest(path: Path, **kwargs) -> Manifest:
    """Initialize a new manifest with defaults"""
    return Manifest(
        name=kwargs.get("name") or path.name or "default-package",
        version=kwargs.get("version") or "0.0.1",
        description=kwargs.get("description") or "A Skald package",
        authors=kwargs.get("authors") or ["Your Name <you@example.com>"],
        main=kwargs.get("main") or "src/main.sk"
    )
