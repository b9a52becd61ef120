"""Outdated cache file cleanup with backups."""

import json
import os
import time
from unittest.mock import patch

import pytest

from courtcal.services.cleanup import CacheCleaner


def _touch(path, age_days: float = 0) -> None:
    path.write_text('{"month": "x"}')
    if age_days:
        stamp = time.time() - age_days * 24 * 60 * 60
        os.utime(path, (stamp, stamp))


@pytest.fixture
def cleaner(tmp_path) -> CacheCleaner:
    return CacheCleaner(tmp_path)


class TestCleanupOutdated:
    def test_old_files_removed_recent_kept(self, cleaner, tmp_path):
        _touch(tmp_path / "2024-01.json", age_days=40)
        _touch(tmp_path / "2025-08.json", age_days=1)

        result = cleaner.cleanup_outdated(max_age_days=30)

        assert result["success"]
        assert result["totalFilesEvaluated"] == 2
        assert result["filesIdentifiedForRemoval"] == 1
        assert result["filesSuccessfullyRemoved"] == 1
        assert result["removedFiles"][0]["filename"] == "2024-01.json"
        assert result["removedFiles"][0]["reason"].startswith("file_too_old")
        assert not (tmp_path / "2024-01.json").exists()
        assert (tmp_path / "2025-08.json").exists()

    def test_problematic_files_removed(self, cleaner, tmp_path):
        _touch(tmp_path / "2025-08.json")
        _touch(tmp_path / "2025-09.json")

        result = cleaner.cleanup_outdated(problematic_files=["2025-09.json"])

        assert [f["filename"] for f in result["removedFiles"]] == ["2025-09.json"]
        assert result["removedFiles"][0]["reason"] == "problematic_file"
        assert (tmp_path / "2025-08.json").exists()

    def test_backup_with_manifest(self, cleaner, tmp_path):
        _touch(tmp_path / "2025-09.json")

        result = cleaner.cleanup_outdated(problematic_files=["2025-09.json"])

        assert result["backupCreated"]
        backup = tmp_path / "backups"
        [folder] = list(backup.iterdir())
        assert folder.name.startswith("cache-backup-")
        assert (folder / "2025-09.json").exists()
        manifest = json.loads((folder / "backup-manifest.json").read_text())
        assert manifest["backupReason"] == "cache_cleanup"
        assert manifest["successfulBackups"] == 1
        assert manifest["files"][0]["filename"] == "2025-09.json"

    def test_nothing_to_do(self, cleaner, tmp_path):
        result = cleaner.cleanup_outdated()
        assert result["success"]
        assert result["totalFilesEvaluated"] == 0
        assert result["backupCreated"] is False
        assert not (tmp_path / "backups").exists()

    def test_backup_failure_aborts(self, cleaner, tmp_path):
        _touch(tmp_path / "2025-09.json")

        with patch.object(cleaner, "create_backup", return_value={"success": False, "error": "disk full"}):
            result = cleaner.cleanup_outdated(problematic_files=["2025-09.json"])

        assert not result["success"]
        assert result["error"] == "Backup creation failed"
        assert result["backupError"] == "disk full"
        assert (tmp_path / "2025-09.json").exists()
