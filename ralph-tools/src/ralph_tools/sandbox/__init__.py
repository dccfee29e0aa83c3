"""Sandbox collaborators: the abstract interface and its Docker and local backends."""
from .base import EXCLUDED_DIRS, Sandbox
from .docker import DockerSandbox
from .local import LocalSandbox

__all__ = ["EXCLUDED_DIRS", "Sandbox", "DockerSandbox", "LocalSandbox"]
