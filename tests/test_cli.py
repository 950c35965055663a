"""Smoke tests for the CLI.

These tests verify CLI behaviour without git, go, or xgo; builds go
through a Builder wired to the fake toolchain.
"""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from mason import __version__
from mason.builder import Builder
from mason.cli import EXIT_CLEANUP_FAILED, app
from mason.errors import CleanupError
from tests.conftest import LINUX_AMD64, FakeBlueprint, FakeCommandRunner, fake_xgo

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch):
    """Keep log records out of captured command output."""
    monkeypatch.setenv("MASON_LOG_LEVEL", "CRITICAL")


def fake_factory():
    """Return a new_openbazaar_daemon replacement using the fake toolchain."""

    def factory(label, version_reference, settings=None, **kwargs):
        return Builder(
            label,
            version_reference,
            blueprint=FakeBlueprint(),
            settings=settings,
            command_runner=FakeCommandRunner(on_run=fake_xgo),
            target=LINUX_AMD64,
        )

    return factory


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "build" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_short_version_flag(self) -> None:
        """CLI -V should print version and exit 0."""
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_no_args_shows_help(self) -> None:
        """CLI with no args should show help."""
        result = runner.invoke(app, [])
        assert "Usage:" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command(self) -> None:
        """CLI config should show configuration."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Cache directory" in result.stdout
        assert "Go version" in result.stdout

    def test_config_json(self) -> None:
        """CLI config --json should output valid JSON."""
        result = runner.invoke(app, ["config", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert "cache_dir" in data


class TestCLITarget:
    """Test CLI target command."""

    def test_target_json(self) -> None:
        """Should show the resolved target and filename."""
        with patch("mason.targets.resolve_build_target", return_value=LINUX_AMD64):
            result = runner.invoke(app, ["target", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["target"] == "linux/amd64"
        assert data["filename"] == "openbazaard-linux-amd64"

    def test_target_unsupported(self) -> None:
        """An unsupported host should exit 1."""
        with patch("mason.targets.platform.system", return_value="Plan9"):
            result = runner.invoke(app, ["target"])
        assert result.exit_code == 1
        assert "unsupported_target" in result.stdout


class TestCLIBuild:
    """Test CLI build command."""

    def test_build_then_cache_hit(self, tmp_path, monkeypatch) -> None:
        """A second build should be served from the cache."""
        monkeypatch.setenv("MASON_TMP_DIR", str(tmp_path / "work"))
        cache_dir = tmp_path / "cache"

        with patch("mason.builder.new_openbazaar_daemon", fake_factory()):
            first = runner.invoke(
                app, ["build", "t", "v1.2.0", "--cache-dir", str(cache_dir), "--json"]
            )
            second = runner.invoke(
                app, ["build", "t", "v1.2.0", "--cache-dir", str(cache_dir), "--json"]
            )

        assert first.exit_code == 0, first.stdout
        assert second.exit_code == 0, second.stdout
        first_data = json.loads(first.stdout)
        second_data = json.loads(second.stdout)
        assert first_data["cache_hit"] is False
        assert second_data["cache_hit"] is True
        assert first_data["binary_path"] == second_data["binary_path"]
        assert first_data["work_dir"] is None
        assert list((tmp_path / "work").iterdir()) == []

    def test_build_keep(self, tmp_path, monkeypatch) -> None:
        """--keep should leave the work dir in place."""
        monkeypatch.setenv("MASON_TMP_DIR", str(tmp_path / "work"))

        with patch("mason.builder.new_openbazaar_daemon", fake_factory()):
            result = runner.invoke(
                app,
                [
                    "build",
                    "t",
                    "v1.2.0",
                    "--cache-dir",
                    str(tmp_path / "cache"),
                    "--keep",
                    "--json",
                ],
            )

        assert result.exit_code == 0, result.stdout
        data = json.loads(result.stdout)
        assert data["work_dir"] is not None

    def test_build_failure_exits_1(self, tmp_path, monkeypatch) -> None:
        """A failed build should report the error code and exit 1."""
        monkeypatch.setenv("MASON_TMP_DIR", str(tmp_path / "work"))

        def factory(label, version_reference, settings=None, **kwargs):
            return Builder(
                label,
                version_reference,
                blueprint=FakeBlueprint(fail_checkout=True),
                settings=settings,
                command_runner=FakeCommandRunner(),
                target=LINUX_AMD64,
            )

        with patch("mason.builder.new_openbazaar_daemon", factory):
            result = runner.invoke(
                app, ["build", "t", "nope", "--cache-dir", str(tmp_path / "cache")]
            )

        assert result.exit_code == 1
        assert "source_preparation_failed" in result.stdout

    def test_cleanup_failure_exits_3(self, tmp_path, monkeypatch) -> None:
        """A failed cleanup should terminate with its own exit status."""
        monkeypatch.setenv("MASON_TMP_DIR", str(tmp_path / "work"))

        with (
            patch("mason.builder.new_openbazaar_daemon", fake_factory()),
            patch.object(
                Builder, "must_clean", side_effect=CleanupError("/w", "busy")
            ),
        ):
            result = runner.invoke(
                app, ["build", "t", "v1.2.0", "--cache-dir", str(tmp_path / "cache")]
            )

        assert result.exit_code == EXIT_CLEANUP_FAILED


class TestCLICache:
    """Test CLI cache subcommands."""

    def _build(self, tmp_path, monkeypatch, version="v1.2.0"):
        monkeypatch.setenv("MASON_TMP_DIR", str(tmp_path / "work"))
        with patch("mason.builder.new_openbazaar_daemon", fake_factory()):
            result = runner.invoke(
                app, ["build", "t", version, "--cache-dir", str(tmp_path / "cache")]
            )
        assert result.exit_code == 0, result.stdout

    def test_list_empty(self, tmp_path) -> None:
        """An empty cache should say so."""
        result = runner.invoke(
            app, ["cache", "list", "--cache-dir", str(tmp_path / "cache")]
        )
        assert result.exit_code == 0
        assert "No cached builds" in result.stdout

    def test_list_json(self, tmp_path, monkeypatch) -> None:
        """Listing should include built entries."""
        self._build(tmp_path, monkeypatch)

        result = runner.invoke(
            app,
            ["cache", "list", "--verify", "--json", "--cache-dir", str(tmp_path / "cache")],
        )

        assert result.exit_code == 0
        [entry] = json.loads(result.stdout)
        assert entry["artifact_name"] == "openbazaard"
        assert entry["version_reference"] == "v1.2.0"
        assert entry["state"] == "ok"

    def test_show_and_remove(self, tmp_path, monkeypatch) -> None:
        """show should print the path; remove should delete the entry."""
        self._build(tmp_path, monkeypatch)
        cache_args = ["--cache-dir", str(tmp_path / "cache")]

        shown = runner.invoke(
            app, ["cache", "show", "openbazaard", "v1.2.0", "--json", *cache_args]
        )
        assert shown.exit_code == 0
        assert json.loads(shown.stdout)["path"].endswith("openbazaard")

        removed = runner.invoke(
            app, ["cache", "remove", "openbazaard", "v1.2.0", *cache_args]
        )
        assert removed.exit_code == 0

        missing = runner.invoke(
            app, ["cache", "show", "openbazaard", "v1.2.0", *cache_args]
        )
        assert missing.exit_code == 1
        assert "cache_miss" in missing.stdout

        again = runner.invoke(
            app, ["cache", "remove", "openbazaard", "v1.2.0", *cache_args]
        )
        assert again.exit_code == 1

    def test_prune_nothing(self, tmp_path) -> None:
        """Pruning an empty cache should succeed."""
        result = runner.invoke(
            app, ["cache", "prune", "--cache-dir", str(tmp_path / "cache")]
        )
        assert result.exit_code == 0
        assert "Nothing to prune" in result.stdout
