"""Tests for release packaging."""

import tarfile

import pytest

from shipctl.config import ProjectConfig, RemoteConfig
from shipctl.core.exceptions import PackagingFailure, UploadFailure
from shipctl.deploy.archive import ArchiveStage, is_excluded


@pytest.fixture
def stage(profile, executor, session_log) -> ArchiveStage:
    return ArchiveStage(profile.project, profile.remote, executor, session_log)


class TestExclusions:
    """Tests for tar-style exclusion matching."""

    @pytest.mark.parametrize(
        "path",
        [
            "vendor",
            "vendor/acme/lib.php",
            "packages/billing/vendor",
            "node_modules/left-pad/index.js",
            "storage/oauth-private.key",
            ".git/HEAD",
            "tests/Feature/ExampleTest.php",
            "storage/logs/laravel.log",
        ],
    )
    def test_excluded(self, path):
        assert is_excluded(path, ProjectConfig().excludes)

    @pytest.mark.parametrize(
        "path",
        ["app/Http/Kernel.php", "artisan", "storage/logs", "resources/views/vendor.blade.php", "routes/web.php"],
    )
    def test_included(self, path):
        assert not is_excluded(path, ProjectConfig().excludes)


class TestArchiveStage:
    """Tests for ArchiveStage."""

    def test_build_honours_excludes(self, stage, project_dir):
        archive = stage.build("20240101-120000")

        assert archive.name == "laravel-20240101-120000.tar.gz"
        with tarfile.open(archive, "r:gz") as tar:
            names = set(tar.getnames())

        assert "shop/artisan" in names
        assert "shop/app/Kernel.php" in names
        assert "shop/storage/logs" in names
        assert not any(name.startswith("shop/vendor") for name in names)
        assert "shop/storage/oauth-private.key" not in names
        assert "shop/storage/logs/laravel.log" not in names

    def test_build_logged(self, stage, session_log):
        stage.build("20240101-120000")
        log = session_log.read()
        assert "[CMD] [package] Executing: tar -czf" in log
        assert "--exclude='vendor'" in log

    def test_archive_inside_project_is_not_packed_into_itself(self, profile, executor, project_dir):
        project = profile.project.model_copy(update={"archive_dir": str(project_dir)})
        stage = ArchiveStage(project, profile.remote, executor)

        archive = stage.build("20240101-120000")

        with tarfile.open(archive, "r:gz") as tar:
            assert f"shop/{archive.name}" not in tar.getnames()

    def test_missing_project(self, executor, tmp_path):
        stage = ArchiveStage(ProjectConfig(path=str(tmp_path / "missing")), RemoteConfig(), executor)
        with pytest.raises(PackagingFailure):
            stage.build("x")

    def test_upload_failure(self, stage, executor, tmp_path):
        executor.respond("upload", 1, "lost connection")
        with pytest.raises(UploadFailure):
            stage.upload(tmp_path / "laravel-x.tar.gz")

    def test_discard(self, tmp_path):
        archive = tmp_path / "laravel-x.tar.gz"
        archive.write_bytes(b"")
        assert ArchiveStage.discard(archive) is True
        assert ArchiveStage.discard(archive) is False
        assert ArchiveStage.discard(None) is False
