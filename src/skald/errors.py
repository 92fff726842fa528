"""
Skald Exception Classes

Every failure raised by the package manager derives from SkaldError and
carries the names and versions involved as attributes, so callers can
report or recover without parsing messages.
"""

from typing import List, Optional


class SkaldError(Exception):
    """Base exception for package manager errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidVersionError(SkaldError, ValueError):
    """Version text is not major.minor.patch"""

    def __init__(self, text: str):
        super().__init__(f"invalid version format: {text!r}")
        self.text = text


class InvalidConstraintError(SkaldError, ValueError):
    """Version range expression could not be parsed"""

    def __init__(self, text: str, reason: Optional[str] = None):
        message = f"invalid version constraint: {text!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)
        self.text = text
        self.reason = reason


class ManifestError(SkaldError):
    """Manifest file exists but cannot be decoded"""

    def __init__(self, path: str, message: str):
        super().__init__(f"invalid manifest {path}: {message}")
        self.path = path


class ResolutionError(SkaldError):
    """Raised when dependencies cannot be resolved"""
    pass


class PackageNotFoundError(ResolutionError):
    """No variant of the package is known"""

    def __init__(self, name: str, required_by: Optional[str] = None):
        message = f"package not found: {name}"
        if required_by:
            message += f" (required by {required_by})"
        super().__init__(message)
        self.name = name
        self.required_by = required_by


class NoCompatibleVersionError(ResolutionError):
    """Known variants exist but none satisfies the constraint"""

    def __init__(self, name: str, constraint: str, required_by: Optional[str] = None):
        message = f"no compatible version found for {name} with constraint {constraint}"
        if required_by:
            message += f" (required by {required_by})"
        super().__init__(message)
        self.name = name
        self.constraint = constraint
        self.required_by = required_by


class VersionConflictError(ResolutionError):
    """An already selected version fails a later requirement"""

    def __init__(
        self,
        name: str,
        resolved_version: str,
        first_requirer: str,
        first_constraint: str,
        requirer: str,
        constraint: str
    ):
        super().__init__(
            f"version conflict for {name}: {requirer} requires {name} {constraint}, "
            f"but {name}@{resolved_version} was already selected for "
            f"{first_requirer} ({first_constraint})"
        )
        self.name = name
        self.resolved_version = resolved_version
        self.first_requirer = first_requirer
        self.first_constraint = first_constraint
        self.requirer = requirer
        self.constraint = constraint


class CircularDependencyError(ResolutionError):
    """Dependency graph contains a cycle"""

    def __init__(self, cycle: List[str]):
        super().__init__("circular dependency detected: " + " -> ".join(cycle))
        self.cycle = cycle


class NotInstalledError(SkaldError):
    """Uninstall target is not present in the scope"""

    def __init__(self, name: str, version: Optional[str] = None, scope: Optional[str] = None):
        target = f"{name}@{version}" if version else name
        message = f"package {target} is not installed"
        if scope:
            message += f" ({scope})"
        super().__init__(message)
        self.name = name
        self.version = version
        self.scope = scope


class PermissionDeniedError(SkaldError):
    """Shared global directory is not writable by this process"""

    def __init__(self, path: str):
        super().__init__(
            f"cannot write to {path}: permission denied "
            f"(global installs may need to be run with sudo or as an administrator)"
        )
        self.path = path


class InstallError(SkaldError):
    """Download, extraction or filesystem failure while installing"""

    def __init__(self, package: str, operation: str):
        super().__init__(f"failed to install {package}: {operation}")
        self.package = package
        self.operation = operation


class RegistryError(SkaldError):
    """Registry request failed"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(SkaldError):
    """Registry authentication failed or is missing"""
    pass
