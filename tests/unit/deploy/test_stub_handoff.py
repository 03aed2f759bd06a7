"""
Unit tests for the bootloader stub handoff.
"""

import subprocess
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from kforge.build.artifacts import KernelImage
from kforge.deploy.stub_handoff import MakeStubBuilder, StubBuildError, StubHandoff


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestMakeStubBuilder:
    """Test suite for MakeStubBuilder."""

    @pytest.fixture
    def stub_dir(self, tmp_path):
        path = tmp_path / "DragonStub"
        path.mkdir()
        (path / "Makefile").write_text("install:\n\ttrue\n")
        return path

    def test_build_command(self, stub_dir):
        builder = MakeStubBuilder(stub_dir, jobs=8)
        assert builder.build_command() == ["make", "-C", str(stub_dir), "install", "-j8"]

    def test_jobs_default_to_cpu_count(self, stub_dir):
        with patch("psutil.cpu_count", return_value=6):
            builder = MakeStubBuilder(stub_dir)
        assert builder.build_command()[-1] == "-j6"

    def test_environment(self, stub_dir, tmp_path):
        env = MakeStubBuilder(stub_dir, jobs=1).build_env(
            tmp_path / "kernel.elf", tmp_path / "sysroot"
        )
        assert env["PAYLOAD_ELF"] == str(tmp_path / "kernel.elf")
        assert env["TARGET_SYSROOT"] == str(tmp_path / "sysroot")

    def test_build_success(self, stub_dir, tmp_path):
        with patch("subprocess.run", return_value=completed()) as mock_run:
            MakeStubBuilder(stub_dir, jobs=2).build(tmp_path / "kernel.elf", tmp_path / "sysroot")

        env = mock_run.call_args[1]["env"]
        assert env["PAYLOAD_ELF"] == str(tmp_path / "kernel.elf")

    def test_build_failure(self, stub_dir, tmp_path):
        with patch("subprocess.run", return_value=completed(2, stderr="make: *** Error 1")):
            with pytest.raises(StubBuildError) as exc_info:
                MakeStubBuilder(stub_dir, jobs=2).build(tmp_path / "k.elf", tmp_path / "s")

        assert exc_info.value.exit_status == 2
        assert "Error 1" in exc_info.value.output

    def test_missing_stub_dir(self, tmp_path):
        with pytest.raises(StubBuildError, match="not found"):
            MakeStubBuilder(tmp_path / "missing", jobs=1).build(tmp_path / "k.elf", tmp_path / "s")


class TestStubHandoff:
    """Test suite for StubHandoff."""

    @pytest.fixture
    def image(self, tmp_path):
        path = tmp_path / "out" / "bin" / "kernel" / "kernel.elf"
        path.parent.mkdir(parents=True)
        path.write_bytes(b"\x7fELF")
        return KernelImage(path, "elf64-x86-64", True)

    def test_sysroot_location(self, tmp_path):
        assert StubHandoff.sysroot_for(tmp_path) == tmp_path / "bin" / "sysroot"

    def test_handoff_passes_absolute_paths(self, image, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        builder = Mock()
        relative_image = KernelImage(
            Path("out/bin/kernel/kernel.elf"), image.object_format, image.has_unwind_sections
        )

        sysroot = StubHandoff(builder, show_progress=False).handoff(relative_image, Path("out"))

        payload, target = builder.build.call_args[0]
        assert payload.is_absolute()
        assert payload == image.path.resolve()
        assert target == sysroot
        assert sysroot == (tmp_path / "out" / "bin" / "sysroot").resolve()
        assert sysroot.is_dir()

    def test_failure_leaves_image(self, image, tmp_path):
        builder = Mock()
        builder.build.side_effect = StubBuildError("Stub build failed", 2)

        with pytest.raises(StubBuildError):
            StubHandoff(builder, show_progress=False).handoff(image, tmp_path / "out")

        assert image.path.exists()
