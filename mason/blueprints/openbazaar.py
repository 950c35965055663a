"""Blueprint for the OpenBazaar daemon (openbazaar-go).

The source is cloned into a GOPATH layout inside the work dir so the
toolchain can resolve its import path::

    <work_dir>/src/github.com/OpenBazaar/openbazaar-go
"""

from __future__ import annotations

import logging
from pathlib import Path

from mason.config import DEFAULT_SOURCE_URL
from mason.errors import (
    STAGE_CHECKOUT,
    STAGE_INFLATE,
    BuildCommandError,
    SourcePreparationError,
)
from mason.pipeline import (
    BuildCommand,
    CommandRunner,
    SubprocessCommandRunner,
    run_pipeline,
)

logger = logging.getLogger(__name__)

ARTIFACT_NAME = "openbazaard"
IMPORT_PATH = "github.com/OpenBazaar/openbazaar-go"


class OpenBazaarSource:
    """An openbazaar-go checkout inside a GOPATH work dir."""

    def __init__(self, work_dir: Path, runner: CommandRunner) -> None:
        self._work_dir = Path(work_dir)
        self._runner = runner

    @property
    def work_dir(self) -> Path:
        return self._work_dir

    @property
    def binary_prefix(self) -> str:
        return ARTIFACT_NAME

    @property
    def package_dir(self) -> Path:
        return self._work_dir / "src" / IMPORT_PATH

    def checkout_version(self, version_reference: str) -> None:
        """Check out a tag, branch, or commit.

        Raises:
            SourcePreparationError: If git checkout fails.
        """
        if not version_reference:
            raise SourcePreparationError(STAGE_CHECKOUT, "empty version reference")
        # git would parse it as an option and check out something else
        if version_reference.startswith("-"):
            raise SourcePreparationError(
                STAGE_CHECKOUT, f"invalid version reference: {version_reference!r}"
            )
        command = BuildCommand(
            name="git checkout",
            argv=["git", "checkout", "--quiet", version_reference],
            cwd=self.package_dir,
        )
        try:
            run_pipeline([command], self._work_dir, self._runner)
        except BuildCommandError as e:
            raise SourcePreparationError(STAGE_CHECKOUT, str(e)) from e
        logger.info("Checked out %s at %s", version_reference, self.package_dir)


class OpenBazaarDaemonBlueprint:
    """Fetches openbazaar-go with git."""

    artifact_name = ARTIFACT_NAME

    def __init__(
        self,
        source_url: str = DEFAULT_SOURCE_URL,
        runner: CommandRunner | None = None,
    ) -> None:
        self.source_url = source_url
        self.runner = runner or SubprocessCommandRunner()

    def inflate(self, work_dir: Path) -> OpenBazaarSource:
        """Clone the daemon source into ``work_dir``.

        Raises:
            SourcePreparationError: If the clone fails.
        """
        source = OpenBazaarSource(work_dir, self.runner)
        try:
            source.package_dir.parent.mkdir(parents=True, exist_ok=True)
            run_pipeline(
                [
                    BuildCommand(
                        name="git clone",
                        argv=["git", "clone", self.source_url, str(source.package_dir)],
                    )
                ],
                source.work_dir,
                self.runner,
            )
        except (BuildCommandError, OSError) as e:
            raise SourcePreparationError(STAGE_INFLATE, str(e)) from e
        logger.info("Inflated %s into %s", self.source_url, source.package_dir)
        return source


__all__ = [
    "ARTIFACT_NAME",
    "IMPORT_PATH",
    "OpenBazaarDaemonBlueprint",
    "OpenBazaarSource",
]
