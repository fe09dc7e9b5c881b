"""Package installation orchestrator.

This module contains the Installer which resolves a requested package and
its dependency closure into the local cache, one package or a whole batch
at a time.
"""

import logging
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from bpm.core.package import Dependency, PackageSpec
from bpm.core.resolver import Resolver, as_constraint
from bpm.errors import BpmError, CyclicDependencyError
from bpm.utils.version import VersionConstraint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallRequest:
    """A package requested by the user."""

    name: str
    constraint: VersionConstraint | str | None = None
    allow_prerelease: bool = False


@dataclass
class InstallOutcome:
    """Result of installing one requested package."""

    name: str
    constraint: str
    specs: list[PackageSpec] = field(default_factory=list)
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    """Outcomes of a batch install, in request order."""

    outcomes: list[InstallOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def all_successful(self) -> bool:
        return all(o.success for o in self.outcomes)

    @property
    def errors(self) -> list[Exception]:
        return [o.error for o in self.outcomes if o.error is not None]


class Installer:
    """Installs packages and their dependencies into the local cache.

    The dependency closure is walked with an explicit stack rather than
    recursion. Names on the current path form the visited set; meeting one
    again is a cycle.
    """

    def __init__(self, resolver: Resolver, max_workers: int = 4):
        """Initialize the installer.

        Args:
            resolver: Resolver used for every package in the closure
            max_workers: Upper bound on parallel installs in install_many
        """
        self.resolver = resolver
        self.max_workers = max_workers

    def install(
        self,
        name: str,
        constraint: VersionConstraint | str | None = None,
        allow_prerelease: bool = False,
        visited: Sequence[str] | None = None,
    ) -> list[PackageSpec]:
        """Install a package and its dependency closure.

        Args:
            name: Package name
            constraint: Version constraint (defaults to any release)
            allow_prerelease: Accept a prerelease for the requested package
            visited: Names already being installed by the caller, outermost first

        Returns:
            Installed specs, dependencies before the packages needing them

        Raises:
            UnresolvedError: If the package or a dependency cannot be resolved
            CyclicDependencyError: If the dependency graph has a cycle
            NotFoundError, NetworkError, VerificationError: If fetching fails
        """
        constraint = as_constraint(constraint)
        path = list(visited or ())
        if name in path:
            raise CyclicDependencyError([*path, name])

        logger.info("Installing %s %s", name, constraint)
        root = self.resolver.resolve(name, constraint, allow_prerelease)

        resolved: dict[str, PackageSpec] = {root.name: root}
        installed: list[PackageSpec] = []
        stack: list[tuple[PackageSpec, Iterator[Dependency]]] = [(root, iter(root.dependencies))]
        path.append(root.name)

        while stack:
            spec, dependencies = stack[-1]
            dependency = next(dependencies, None)

            if dependency is None:
                stack.pop()
                path.pop()
                if spec not in installed:
                    installed.append(spec)
                continue

            dep_name, dep_constraint = dependency
            if dep_name in path:
                raise CyclicDependencyError([*path, dep_name])

            known = resolved.get(dep_name)
            if known is not None and dep_constraint.matches(known.version):
                logger.debug("%s already satisfied by %s", dep_name, known)
                continue

            logger.debug("Resolving dependency %s %s of %s", dep_name, dep_constraint, spec.name)
            dep_spec = self.resolver.resolve(dep_name, dep_constraint)
            resolved[dep_name] = dep_spec
            stack.append((dep_spec, iter(dep_spec.dependencies)))
            path.append(dep_name)

        return installed

    def _install_one(self, request: InstallRequest) -> InstallOutcome:
        constraint_text = str(request.constraint or VersionConstraint.DEFAULT)
        try:
            specs = self.install(request.name, request.constraint, request.allow_prerelease)
        except BpmError as e:
            logger.info("Failed to install %s: %s", request.name, e)
            return InstallOutcome(name=request.name, constraint=constraint_text, error=e)
        except Exception as e:
            logger.warning("Unexpected error installing %s: %s", request.name, e)
            return InstallOutcome(name=request.name, constraint=constraint_text, error=e)
        return InstallOutcome(name=request.name, constraint=constraint_text, specs=specs)

    def install_many(self, requests: Sequence[InstallRequest]) -> BatchResult:
        """Install several packages independently.

        Packages are installed in parallel on a bounded worker pool. A failure
        is recorded on its own outcome and never stops the other packages.

        Args:
            requests: Packages to install

        Returns:
            BatchResult with one outcome per request, in request order
        """
        if not requests:
            return BatchResult()

        logger.info("Starting installation of %d package(s)", len(requests))
        workers = min(self.max_workers, len(requests))

        if workers == 1:
            outcomes = [self._install_one(request) for request in requests]
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(self._install_one, request) for request in requests]
                outcomes = [future.result() for future in futures]

        result = BatchResult(outcomes=outcomes)
        logger.info(
            "Installation complete: %d succeeded, %d failed",
            result.success_count,
            result.failure_count,
        )
        return result
