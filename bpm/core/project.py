"""Project model representing a bpm-managed project."""

from pathlib import Path

from bpm.config.parser import (
    PROJECT_FILE,
    find_project_root,
    load_project_config,
    save_project_config,
)
from bpm.config.schemas import ProjectConfig
from bpm.core.installer import BatchResult, Installer, InstallRequest
from bpm.utils.version import VersionConstraint


class Project:
    """Represents a bpm-managed project.

    A project is defined by its bpm.yaml configuration file, which lists the
    packages the project depends on.
    """

    def __init__(self, root: Path, config: ProjectConfig):
        """Initialize a Project.

        Args:
            root: Path to the project root directory
            config: Parsed project configuration
        """
        self._root = root.resolve()
        self._config = config

    @classmethod
    def load(cls, path: Path | None = None) -> "Project":
        """Load a project from disk.

        Args:
            path: Path to the project root, or None to search from cwd

        Returns:
            Loaded Project instance

        Raises:
            FileNotFoundError: If no project is found
            ConfigError: If bpm.yaml is invalid
        """
        if path is None:
            path = find_project_root()
            if path is None:
                raise FileNotFoundError(
                    f"No {PROJECT_FILE} found in current directory or any parent directory"
                )
        else:
            path = path.resolve()
            if not (path / PROJECT_FILE).exists():
                raise FileNotFoundError(f"No {PROJECT_FILE} found in {path}")

        config = load_project_config(path)
        return cls(path, config)

    @classmethod
    def nearest_project(cls, start: Path | None = None) -> "Project | None":
        """Find the project containing a directory.

        Args:
            start: Directory to start searching from (defaults to cwd)

        Returns:
            The nearest enclosing Project, or None outside any project
        """
        root = find_project_root(start)
        if root is None:
            return None
        return cls(root, load_project_config(root))

    @classmethod
    def init(cls, path: Path, name: str | None = None, registry: str | None = None) -> "Project":
        """Initialize a new project.

        Args:
            path: Path to the project root directory
            name: Optional project name (defaults to directory name)
            registry: Optional registry URL for this project

        Returns:
            New Project instance

        Raises:
            FileExistsError: If bpm.yaml already exists
        """
        path = path.resolve()
        config_path = path / PROJECT_FILE

        if config_path.exists():
            raise FileExistsError(f"Project already initialized: {config_path}")

        config = ProjectConfig(name=name or path.name, registry=registry)
        project = cls(path, config)
        project.save()
        return project

    def save(self) -> None:
        """Save the project configuration to disk."""
        save_project_config(self._root, self._config)

    @property
    def root(self) -> Path:
        """Get the project root directory."""
        return self._root

    @property
    def name(self) -> str:
        return self._config.name or self._root.name

    @property
    def registry(self) -> str | None:
        """Get the project's registry URL, if it overrides the user setting."""
        return self._config.registry

    @property
    def config(self) -> ProjectConfig:
        return self._config

    @property
    def dependencies(self) -> list[tuple[str, VersionConstraint]]:
        """Get the declared dependencies in file order."""
        return [
            (name, VersionConstraint(constraint))
            for name, constraint in self._config.dependencies.items()
        ]

    def add_dependency(self, name: str, constraint: VersionConstraint | str) -> None:
        """Add or update a dependency.

        Args:
            name: Package name
            constraint: Version constraint

        Raises:
            ParseError: If the constraint is malformed
        """
        if not isinstance(constraint, VersionConstraint):
            constraint = VersionConstraint(constraint)
        self._config.dependencies[name] = str(constraint)

    def remove_dependency(self, name: str) -> bool:
        """Remove a dependency.

        Returns:
            True if the dependency was removed, False if it wasn't present
        """
        if name in self._config.dependencies:
            del self._config.dependencies[name]
            return True
        return False

    def fetch_dependencies(self, installer: Installer) -> BatchResult:
        """Install every declared dependency."""
        requests = [InstallRequest(name, constraint) for name, constraint in self.dependencies]
        return installer.install_many(requests)

    def __repr__(self) -> str:
        return f"Project(root={self._root!r}, name={self.name!r})"
