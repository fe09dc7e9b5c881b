"""Semantic versioning utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering

from bpm.errors import ParseError


@total_ordering
@dataclass(frozen=True)
class SemVer:
    """Semantic version representation.

    Minor and patch default to zero, so "1.0" and "1.0.0" are the same
    version. Build metadata is kept for display but ignored for ordering
    and identity.
    """

    major: int
    minor: int = 0
    patch: int = 0
    prerelease: str | None = None
    build: str | None = None

    _SEMVER_PATTERN = re.compile(
        r"^v?(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?"
        r"(?:(?:-|\.(?=\d*[a-zA-Z]))(?P<prerelease>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?"
        r"(?:\+(?P<build>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
    )

    @classmethod
    def parse(cls, version_str: str) -> SemVer:
        """Parse a version string.

        Args:
            version_str: Version string (e.g., "1.2.3", "1.1-beta", "2.0.0-rc.1+build.5")

        Returns:
            SemVer instance

        Raises:
            ParseError: If the string is not a valid version
        """
        match = cls._SEMVER_PATTERN.match(version_str.strip())
        if not match:
            raise ParseError(f"Invalid version: {version_str}", version_str)

        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor") or 0),
            patch=int(match.group("patch") or 0),
            prerelease=match.group("prerelease"),
            build=match.group("build"),
        )

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    @property
    def release(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __str__(self) -> str:
        version = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            version += f"-{self.prerelease}"
        if self.build:
            version += f"+{self.build}"
        return version

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self.release == other.release and self.prerelease == other.prerelease

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented

        if self.release != other.release:
            return self.release < other.release

        # Prerelease versions have lower precedence
        if self.prerelease and not other.prerelease:
            return True
        if not self.prerelease and other.prerelease:
            return False
        if self.prerelease and other.prerelease:
            return self._compare_prerelease(self.prerelease, other.prerelease) < 0

        return False

    @staticmethod
    def _compare_prerelease(a: str, b: str) -> int:
        """Compare two prerelease strings."""
        parts_a = a.split(".")
        parts_b = b.split(".")

        for pa, pb in zip(parts_a, parts_b):
            # Numeric identifiers are compared as integers
            if pa.isdigit() and pb.isdigit():
                if int(pa) != int(pb):
                    return int(pa) - int(pb)
            elif pa.isdigit() != pb.isdigit():
                # Numeric identifiers sort before alphanumeric ones
                return -1 if pa.isdigit() else 1
            elif pa != pb:
                return -1 if pa < pb else 1

        # Longer prerelease has higher precedence
        return len(parts_a) - len(parts_b)

    def __hash__(self) -> int:
        return hash((self.major, self.minor, self.patch, self.prerelease))


def _bump(version_text: str, base: SemVer) -> SemVer:
    """Upper bound for a pessimistic (~>) clause.

    The last written numeric segment may float, the one before it is bumped:
    "~> 1.2" allows 1.x, "~> 1.2.3" allows 1.2.x.
    """
    numeric = re.match(r"^v?\d+(?:\.\d+){0,2}", version_text.strip())
    segments = numeric.group(0).count(".") + 1 if numeric else 3
    if segments <= 2:
        return SemVer(base.major + 1, 0, 0)
    return SemVer(base.major, base.minor + 1, 0)


class VersionConstraint:
    """A version requirement made of one or more clauses joined by AND.

    Supported clause operators: "=", "!=", ">", ">=", "<", "<=", "~>"
    (pessimistic), "^" (caret) and "~" (tilde). A bare version means "=".
    """

    DEFAULT = ">= 0"

    _CLAUSE_PATTERN = re.compile(r"^\s*(?P<op>~>|>=|<=|!=|=|>|<|\^|~)?\s*(?P<version>[^\s,]+)\s*$")

    def __init__(self, spec: str | None = None):
        """Initialize a constraint.

        Args:
            spec: Constraint text (e.g., ">= 1.2", "~> 2.0, != 2.1.3", "^1.0.0").
                  None, "" and "latest" mean any release version.

        Raises:
            ParseError: If the text is not a valid constraint
        """
        if spec is None or not spec.strip() or spec.strip() == "latest":
            spec = self.DEFAULT

        self._clauses: list[tuple[str, str, SemVer]] = []
        self._bounds: list[tuple[str, SemVer]] = []

        for part in spec.split(","):
            match = self._CLAUSE_PATTERN.match(part)
            if not match:
                raise ParseError(f"Invalid version constraint: {spec!r}", spec)
            op = match.group("op") or "="
            text = match.group("version")
            try:
                version = SemVer.parse(text)
            except ParseError as e:
                raise ParseError(f"Invalid version constraint: {spec!r}", spec) from e

            self._clauses.append((op, text, version))
            self._bounds.extend(self._expand(op, text, version))

        self.prerelease = any(version.is_prerelease for _, _, version in self._clauses)

    @classmethod
    def parse(cls, text: str | None) -> VersionConstraint:
        return cls(text)

    @classmethod
    def default(cls) -> VersionConstraint:
        return cls(cls.DEFAULT)

    @staticmethod
    def _expand(op: str, text: str, base: SemVer) -> list[tuple[str, SemVer]]:
        if op == "~>":
            return [(">=", base), ("<", _bump(text, base))]

        # Caret range: ^1.2.3 means >=1.2.3 <2.0.0
        if op == "^":
            if base.major == 0:
                if base.minor == 0:
                    return [(">=", base), ("<", SemVer(0, 0, base.patch + 1))]
                return [(">=", base), ("<", SemVer(0, base.minor + 1, 0))]
            return [(">=", base), ("<", SemVer(base.major + 1, 0, 0))]

        # Tilde range: ~1.2.3 means >=1.2.3 <1.3.0
        if op == "~":
            return [(">=", base), ("<", SemVer(base.major, base.minor + 1, 0))]

        return [(op, base)]

    def matches(self, version: SemVer | str, allow_prerelease: bool = False) -> bool:
        """Check if a version satisfies every clause.

        Args:
            version: Version to check
            allow_prerelease: Accept prerelease versions even when no clause names one

        Returns:
            True if the version satisfies the constraint
        """
        if isinstance(version, str):
            version = SemVer.parse(version)

        if version.is_prerelease and not (allow_prerelease or self.prerelease):
            return False

        for op, bound in self._bounds:
            if op == ">=" and version < bound:
                return False
            if op == "<=" and version > bound:
                return False
            if op == ">" and version <= bound:
                return False
            if op == "<" and version >= bound:
                return False
            if op == "=" and version != bound:
                return False
            if op == "!=" and version == bound:
                return False

        return True

    def __and__(self, other: VersionConstraint) -> VersionConstraint:
        return VersionConstraint(f"{self}, {other}")

    def __str__(self) -> str:
        return ", ".join(f"{op} {text}" for op, text, _ in self._clauses)

    def __repr__(self) -> str:
        return f"VersionConstraint({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionConstraint):
            return NotImplemented
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))
