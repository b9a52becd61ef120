"""Removal of outdated or known-bad cache files, with a backup first."""

from __future__ import annotations

import json
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from courtcal.utils.dates import iso_timestamp

logger = logging.getLogger(__name__)

_DAY_SECONDS = 24 * 60 * 60


@dataclass
class _Candidate:
    path: Path
    size: int
    age_days: int
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.path.name,
            "reason": self.reason,
            "size": self.size,
            "age": self.age_days,
        }


class CacheCleaner:
    def __init__(self, data_dir: str | Path = "data") -> None:
        self.data_dir = Path(data_dir)
        self.backup_dir = self.data_dir / "backups"

    def cleanup_outdated(
        self,
        max_age_days: int = 30,
        problematic_files: Iterable[str] = (),
    ) -> dict[str, Any]:
        started = time.monotonic()
        problematic = set(problematic_files)
        logger.info(
            "Starting cache cleanup (max_age_days=%d, problematic=%s)",
            max_age_days, sorted(problematic),
        )

        try:
            files = sorted(
                p for p in self.data_dir.glob("*.json")
                if not p.name.startswith("backup-")
            )
        except OSError as exc:
            logger.error("Cache cleanup failed: %s", exc)
            return {"success": False, "error": str(exc), "duration": _elapsed_ms(started)}

        candidates = [
            c for c in (self._evaluate(p, max_age_days, problematic) for p in files) if c
        ]
        logger.info("Identified %d of %d files for removal", len(candidates), len(files))

        backup: dict[str, Any] | None = None
        if candidates:
            backup = self.create_backup(c.path for c in candidates)
            if not backup["success"]:
                logger.error("Backup failed, aborting cleanup: %s", backup.get("error"))
                return {
                    "success": False,
                    "error": "Backup creation failed",
                    "backupError": backup.get("error"),
                    "duration": _elapsed_ms(started),
                }

        removed: list[_Candidate] = []
        errors: list[dict[str, str]] = []
        for candidate in candidates:
            try:
                candidate.path.unlink()
            except OSError as exc:
                logger.error("Failed to remove %s: %s", candidate.path.name, exc)
                errors.append({"filename": candidate.path.name, "error": str(exc)})
                continue
            logger.info("Removed cache file %s (%s)", candidate.path.name, candidate.reason)
            removed.append(candidate)

        result: dict[str, Any] = {
            "success": not errors,
            "duration": _elapsed_ms(started),
            "totalFilesEvaluated": len(files),
            "filesIdentifiedForRemoval": len(candidates),
            "filesSuccessfullyRemoved": len(removed),
            "removalErrors": len(errors),
            "removedFiles": [c.to_dict() for c in removed],
            "backupCreated": bool(backup and backup["success"]),
            "backupPath": backup["backupPath"] if backup else None,
        }
        if errors:
            result["errors"] = errors
        return result

    def create_backup(self, paths: Iterable[Path]) -> dict[str, Any]:
        """Copy ``paths`` into a timestamped backup folder with a manifest."""
        stamp = iso_timestamp().replace(":", "-").replace(".", "-")
        target = self.backup_dir / f"cache-backup-{stamp}"
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Cache backup creation failed: %s", exc)
            return {"success": False, "error": str(exc)}

        results: list[dict[str, Any]] = []
        for path in paths:
            try:
                copied = shutil.copy2(path, target / path.name)
            except OSError as exc:
                logger.error("Failed to back up %s: %s", path.name, exc)
                results.append({"filename": path.name, "success": False, "error": str(exc)})
                continue
            results.append({"filename": path.name, "success": True, "backupPath": str(copied)})

        ok = sum(1 for r in results if r["success"])
        manifest = {
            "timestamp": iso_timestamp(),
            "backupReason": "cache_cleanup",
            "totalFiles": len(results),
            "successfulBackups": ok,
            "failedBackups": len(results) - ok,
            "files": results,
        }
        manifest_path = target / "backup-manifest.json"
        try:
            manifest_path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to write backup manifest: %s", exc)
            return {"success": False, "error": str(exc)}

        return {
            "success": ok == len(results),
            "backupPath": str(target),
            "manifestPath": str(manifest_path),
            "totalFiles": len(results),
            "successfulBackups": ok,
            "failedBackups": len(results) - ok,
            "results": results,
        }

    @staticmethod
    def _evaluate(path: Path, max_age_days: int, problematic: set[str]) -> _Candidate | None:
        try:
            stat = path.stat()
        except OSError as exc:
            logger.warning("Could not evaluate cache file %s: %s", path.name, exc)
            return None

        age_seconds = time.time() - stat.st_mtime
        age_days = round(age_seconds / _DAY_SECONDS)
        reasons = []
        if age_seconds > max_age_days * _DAY_SECONDS:
            reasons.append(f"file_too_old ({age_days} days)")
        if path.name in problematic:
            reasons.append("problematic_file")
        if not reasons:
            return None
        return _Candidate(path=path, size=stat.st_size, age_days=age_days, reason=", ".join(reasons))


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
