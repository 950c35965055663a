"""Runner for cached binaries.

Wraps a resolved binary path into something the caller can execute.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mason.errors import RunnerError


@dataclass(frozen=True)
class BinaryRunner:
    """An executable binary on disk.

    Attributes:
        binary_path: Absolute path of the binary.
    """

    binary_path: Path

    @classmethod
    def from_binary_path(cls, path: str | Path) -> BinaryRunner:
        """Wrap a binary path into a runner.

        Args:
            path: Path of the binary.

        Returns:
            BinaryRunner for the path.

        Raises:
            RunnerError: If the path is missing, not a file, or not executable.
        """
        binary = Path(path).absolute()
        if not binary.exists():
            raise RunnerError(binary, "binary does not exist")
        if not binary.is_file():
            raise RunnerError(binary, "binary is not a regular file")
        if not os.access(binary, os.X_OK):
            raise RunnerError(binary, "binary is not executable")
        return cls(binary_path=binary)

    def command(self, *args: str) -> list[str]:
        """Return the argv that runs the binary with ``args``."""
        return [str(self.binary_path), *args]

    def run(self, *args: str, **kwargs: Any) -> subprocess.CompletedProcess[Any]:
        """Run the binary with ``args``.

        Keyword arguments are passed through to subprocess.run.
        """
        kwargs.setdefault("check", False)
        return subprocess.run(self.command(*args), **kwargs)


__all__ = ["BinaryRunner"]
