"""Tests for the GitHub Actions helpers."""

import os
from pathlib import Path

import pytest

from android_kernel_builder import actions


class TestActions:
    """Tests for workflow command helpers."""

    def test_group_markers(self, capsys):
        """Should wrap the block in group markers even on error."""
        with pytest.raises(RuntimeError), actions.group("Building kernel"):
            print("inside")
            raise RuntimeError("boom")

        out = capsys.readouterr().out
        assert out == "::group::Building kernel\ninside\n::endgroup::\n"

    def test_add_path(self, tmp_path: Path, monkeypatch):
        """Should update PATH and append to GITHUB_PATH."""
        github_path = tmp_path / "github_path"
        monkeypatch.setenv("GITHUB_PATH", str(github_path))
        monkeypatch.setenv("PATH", "/usr/bin")

        actions.add_path("/usr/lib/ccache")

        assert os.environ["PATH"] == f"/usr/lib/ccache{os.pathsep}/usr/bin"
        assert github_path.read_text() == "/usr/lib/ccache\n"

    def test_set_output(self, tmp_path: Path, monkeypatch):
        """Should append name=value to GITHUB_OUTPUT."""
        output = tmp_path / "output"
        monkeypatch.setenv("GITHUB_OUTPUT", str(output))

        actions.set_output("build-dir", "/work/build")

        assert output.read_text() == "build-dir=/work/build\n"

    def test_is_github_actions(self, monkeypatch):
        """Should read GITHUB_ACTIONS."""
        monkeypatch.setenv("GITHUB_ACTIONS", "true")
        assert actions.is_github_actions()
        monkeypatch.setenv("GITHUB_ACTIONS", "false")
        assert not actions.is_github_actions()
