"""
Semantic versions and version constraints

A Version is a plain major.minor.patch triple (no pre-release or build
metadata). A Constraint is either an exact version or a range with
optional, independently inclusive bounds. Both are immutable.

Constraint grammar, tried in order:
    ^1.2.3            >=1.2.3, <2.0.0
    ~1.2.3            >=1.2.3, <1.3.0
    >=1.0.0, <2.0.0   two comparison clauses
    >=1.0.0           one comparison (>=, >, <=, <)
    1.2.3             exact version
    * or empty        any version
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import total_ordering
from typing import Optional, Tuple

import semver

from .errors import InvalidConstraintError, InvalidVersionError


_VERSION_RE = re.compile(r"^([A-Za-z])?([0-9]+)\.([0-9]+)\.([0-9]+)$")

# Longest operators first so ">=" is not read as ">"
_COMPARISON_OPS = (">=", "<=", ">", "<")


@total_ordering
@dataclass(frozen=True)
class Version:
    """A major.minor.patch version"""
    major: int
    minor: int
    patch: int

    def __post_init__(self):
        if min(self.major, self.minor, self.patch) < 0:
            raise InvalidVersionError(f"{self.major}.{self.minor}.{self.patch}")

    @classmethod
    def parse(cls, text: str) -> 'Version':
        """Parse 'major.minor.patch', optionally prefixed by one letter such as 'v'"""
        match = _VERSION_RE.match(text or "")
        if not match:
            raise InvalidVersionError(text)
        return cls(int(match.group(2)), int(match.group(3)), int(match.group(4)))

    def to_semver(self) -> semver.Version:
        return semver.Version(self.major, self.minor, self.patch)

    @classmethod
    def from_semver(cls, value: semver.Version) -> 'Version':
        return cls(value.major, value.minor, value.patch)

    def compare(self, other: 'Version') -> int:
        """Return -1, 0 or 1 as self is older than, equal to or newer than other"""
        return self.to_semver().compare(other.to_semver())

    def next_major(self) -> 'Version':
        """Smallest version with a higher major component"""
        return Version.from_semver(self.to_semver().bump_major())

    def next_minor(self) -> 'Version':
        """Smallest version with the same major and a higher minor component"""
        return Version.from_semver(self.to_semver().bump_minor())

    def __lt__(self, other: 'Version') -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


class Constraint(ABC):
    """A predicate over versions"""

    @abstractmethod
    def satisfies(self, version: Version) -> bool:
        pass

    @abstractmethod
    def __str__(self) -> str:
        pass


@dataclass(frozen=True)
class ExactConstraint(Constraint):
    """Satisfied by exactly one version"""
    version: Version

    def satisfies(self, version: Version) -> bool:
        return self.version.compare(version) == 0

    def __str__(self) -> str:
        return str(self.version)


@dataclass(frozen=True)
class RangeConstraint(Constraint):
    """Satisfied by versions between optional lower and upper bounds"""
    min: Optional[Version] = None
    max: Optional[Version] = None
    min_inclusive: bool = True
    max_inclusive: bool = False

    def satisfies(self, version: Version) -> bool:
        if self.min is not None:
            cmp = version.compare(self.min)
            if cmp < 0 or (cmp == 0 and not self.min_inclusive):
                return False
        if self.max is not None:
            cmp = version.compare(self.max)
            if cmp > 0 or (cmp == 0 and not self.max_inclusive):
                return False
        return True

    def __str__(self) -> str:
        parts = []
        if self.min is not None:
            parts.append((">=" if self.min_inclusive else ">") + str(self.min))
        if self.max is not None:
            parts.append(("<=" if self.max_inclusive else "<") + str(self.max))
        return ", ".join(parts) or "*"


def parse_constraint(text: str) -> Constraint:
    """Parse a version range expression"""
    s = (text or "").strip()

    if s in ("", "*"):
        return RangeConstraint()

    if s.startswith("^"):
        v = _parse_version(s[1:], text)
        return RangeConstraint(min=v, max=v.next_major(), min_inclusive=True, max_inclusive=False)

    if s.startswith("~"):
        v = _parse_version(s[1:], text)
        return RangeConstraint(min=v, max=v.next_minor(), min_inclusive=True, max_inclusive=False)

    if "," in s:
        clauses = [part.strip() for part in s.split(",")]
        if len(clauses) != 2:
            raise InvalidConstraintError(text, "expected exactly two comparison clauses")

        bounds = {}
        for clause in clauses:
            comparison = _parse_comparison(clause, text)
            if comparison is None:
                raise InvalidConstraintError(text, f"not a comparison: {clause!r}")
            op, v = comparison
            # A repeated bound overrides the earlier clause
            if op.startswith(">"):
                bounds["min"] = v
                bounds["min_inclusive"] = op == ">="
            else:
                bounds["max"] = v
                bounds["max_inclusive"] = op == "<="
        return RangeConstraint(**bounds)

    comparison = _parse_comparison(s, text)
    if comparison is not None:
        op, v = comparison
        if op.startswith(">"):
            return RangeConstraint(min=v, min_inclusive=op == ">=")
        return RangeConstraint(max=v, max_inclusive=op == "<=")

    return ExactConstraint(_parse_version(s, text))


def _parse_comparison(clause: str, text: str) -> Optional[Tuple[str, Version]]:
    for op in _COMPARISON_OPS:
        if clause.startswith(op):
            return op, _parse_version(clause[len(op):], text)
    return None


def _parse_version(part: str, text: str) -> Version:
    try:
        return Version.parse(part.strip())
    except InvalidVersionError as e:
        raise InvalidConstraintError(text, e.message) from e
