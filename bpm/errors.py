"""Exception hierarchy shared by the bpm core.

Every error carries enough context (name, version, constraint) to be shown
to the user verbatim.
"""

from __future__ import annotations


class BpmError(Exception):
    """Base class for all bpm errors."""

    retryable = False


class ParseError(BpmError, ValueError):
    """Malformed version, constraint or manifest text."""

    def __init__(self, message: str, text: str | None = None):
        self.text = text
        super().__init__(message)


class NotFoundError(BpmError):
    """A package or version does not exist."""

    def __init__(self, message: str, name: str | None = None, version: str | None = None):
        self.name = name
        self.version = version
        super().__init__(message)


class UnresolvedError(NotFoundError):
    """No available version satisfies a constraint."""

    def __init__(self, name: str, constraint: str):
        self.constraint = constraint
        super().__init__(
            f"Can't find package {name} {constraint} available for fetch",
            name=name,
        )


class VerificationError(BpmError):
    """A downloaded archive does not match what was requested."""

    def __init__(self, message: str, name: str | None = None, version: str | None = None):
        self.name = name
        self.version = version
        super().__init__(message)


class CorruptArchiveError(VerificationError):
    """An archive is not a well-formed package archive."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class AccessDeniedError(BpmError, PermissionError):
    """Filesystem or registry access was refused."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class NetworkError(BpmError):
    """Transient transport failure talking to a registry."""

    retryable = True

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class CyclicDependencyError(BpmError):
    """The dependency graph loops back on itself."""

    def __init__(self, chain: list[str]):
        self.chain = chain
        super().__init__(f"Circular dependency detected: {' -> '.join(chain)}")


class ValidationError(BpmError):
    """A package manifest failed validation.

    All problems are collected before raising so they can be reported at once.
    """

    def __init__(self, errors: list[str], path: str | None = None):
        self.errors = errors
        self.path = path
        super().__init__(
            "Package validation failed:\n" + "\n".join(f"* {error}" for error in errors)
        )


class EmptyResultError(BpmError):
    """A package listing matched nothing."""

    def __init__(self, names: list[str] | None = None):
        self.names = names or []
        if self.names:
            joined = '", "'.join(self.names)
            message = f'No packages found matching "{joined}".'
        else:
            message = "No packages found."
        super().__init__(message)


class NotLoggedInError(BpmError):
    """An operation needs a registry session but none is active."""

    def __init__(self, message: str = "Please login first with `bpm login`."):
        super().__init__(message)


class UnpackConflictError(BpmError):
    """An unpack target already holds a different package."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)
