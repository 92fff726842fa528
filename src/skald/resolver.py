"""
Dependency resolver for Skald packages

Resolution is greedy and depth-first: the first requirement to reach a
package name selects the newest known version satisfying it, and every
later requirement must accept that selection. There is no backtracking,
so a later incompatible requirement is a VersionConflictError even when
some other combination of versions would have worked.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Set, Tuple

from .errors import (
    CircularDependencyError,
    NoCompatibleVersionError,
    PackageNotFoundError,
    VersionConflictError,
)
from .manifest import Manifest
from .version import Constraint, Version

if TYPE_CHECKING:
    from .registry import PackageInfo, Registry

logger = logging.getLogger(__name__)

ROOT_NAME = "<root>"


@dataclass
class Package:
    """One version of a package, as known to the resolver pool"""
    name: str
    version: Version
    dependencies: Dict[str, Constraint] = field(default_factory=dict)

    @classmethod
    def from_manifest(cls, manifest: Manifest) -> 'Package':
        return cls(
            name=manifest.name,
            version=Version.parse(manifest.version),
            dependencies=manifest.dependency_constraints()
        )

    @classmethod
    def from_info(cls, info: 'PackageInfo') -> 'Package':
        """Pool variant for a registry entry; dev dependencies are not followed"""
        return cls(
            name=info.name,
            version=Version.parse(info.version),
            dependencies=info.manifest.dependency_constraints()
        )

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


class Resolution:
    """The selected package for every name reachable from the root"""

    def __init__(self, packages: Dict[str, Package]):
        self.packages = packages

    def __len__(self) -> int:
        return len(self.packages)

    def __contains__(self, name: str) -> bool:
        return name in self.packages

    def __getitem__(self, name: str) -> Package:
        return self.packages[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.packages)

    def get_resolution_order(self) -> List[Package]:
        """Packages ordered so that each comes after everything it depends on"""
        graph = {
            name: [dep for dep in pkg.dependencies if dep in self.packages]
            for name, pkg in self.packages.items()
        }

        order: List[Package] = []
        visited: Set[str] = set()

        def visit(name: str) -> None:
            if name in visited:
                return
            visited.add(name)
            for dep in graph[name]:
                visit(dep)
            order.append(self.packages[name])

        for name in self.packages:
            visit(name)

        return order


class Resolver:
    """Resolves root dependencies against a pool of known package versions"""

    def __init__(self):
        self.packages: Dict[str, List[Package]] = {}

    def add_package(self, package: Package) -> None:
        """Add a variant to the pool; duplicates are kept"""
        self.packages.setdefault(package.name, []).append(package)

    def resolve(
        self,
        root_dependencies: Dict[str, Constraint],
        root_name: str = ROOT_NAME
    ) -> Resolution:
        """Select one version per reachable name, or raise a ResolutionError"""
        root = Package(
            name=root_name,
            version=Version(0, 0, 0),
            dependencies=dict(root_dependencies)
        )

        resolved: Dict[str, Package] = {}
        # name -> (requirer, constraint) that caused the selection
        selected_for: Dict[str, Tuple[str, Constraint]] = {}
        self._resolve_package(root, resolved, selected_for, [])

        resolved.pop(root.name, None)
        logger.debug("Resolved %d package(s)", len(resolved))
        return Resolution(resolved)

    def resolve_manifest(self, manifest: Manifest, include_dev: bool = False) -> Resolution:
        """Resolve a manifest's dependencies, with the manifest as root"""
        return self.resolve(
            manifest.dependency_constraints(include_dev),
            root_name=manifest.name
        )

    def _resolve_package(
        self,
        package: Package,
        resolved: Dict[str, Package],
        selected_for: Dict[str, Tuple[str, Constraint]],
        stack: List[str]
    ) -> None:
        stack = stack + [package.name]

        for dep_name, constraint in package.dependencies.items():
            if dep_name in stack:
                start = stack.index(dep_name)
                raise CircularDependencyError(stack[start:] + [dep_name])

            existing = resolved.get(dep_name)
            if existing is not None:
                if not constraint.satisfies(existing.version):
                    first_requirer, first_constraint = selected_for[dep_name]
                    raise VersionConflictError(
                        dep_name,
                        str(existing.version),
                        first_requirer,
                        str(first_constraint),
                        package.name,
                        str(constraint)
                    )
                continue

            selected = self._select(dep_name, constraint, package.name)
            logger.debug("Selected %s for %s (%s)", selected, package.name, constraint)

            resolved[dep_name] = selected
            selected_for[dep_name] = (package.name, constraint)

            self._resolve_package(selected, resolved, selected_for, stack)

    def _select(self, name: str, constraint: Constraint, required_by: str) -> Package:
        candidates = self.packages.get(name)
        if not candidates:
            raise PackageNotFoundError(name, required_by)

        for candidate in sorted(candidates, key=lambda p: p.version, reverse=True):
            if constraint.satisfies(candidate.version):
                return candidate

        raise NoCompatibleVersionError(name, str(constraint), required_by)


def populate_from_registry(
    resolver: Resolver,
    registry: 'Registry',
    names: Iterable[str]
) -> int:
    """
    Add every version of every package reachable from names to the pool

    Every variant's dependencies are followed, since the resolver may pick
    any of them. Names the registry does not know are skipped; resolve()
    reports them with the requiring package.

    Returns the number of variants added.
    """
    queue = deque(names)
    seen: Set[str] = set()
    added = 0

    while queue:
        name = queue.popleft()
        if name in seen:
            continue
        seen.add(name)

        versions = registry.get_package(name)
        if not versions:
            logger.debug("Registry has no versions of %s", name)
            continue

        for info in versions.values():
            package = Package.from_info(info)
            resolver.add_package(package)
            added += 1
            queue.extend(dep for dep in package.dependencies if dep not in seen)

    return added
