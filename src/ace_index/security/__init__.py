"""Project path containment primitives."""

from .paths import project_relative_path, resolve_project_path

__all__ = ["project_relative_path", "resolve_project_path"]
