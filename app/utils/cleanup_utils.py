import logging
import os
import shutil
import time
from pathlib import Path
from typing import Dict, Optional

from app.config.settings import settings
from app.models.chain_job import ChainStatus
from app.services.chain.state import is_chain_terminal

logger = logging.getLogger(__name__)


class ChainWorkdirCleaner:
    """Owns the per-job working directories under the chain temp root.

    Completed chains remove their own directory. Failed chains keep theirs for
    inspection until the retention period passes, then sweep() reclaims them
    together with directories whose job row no longer exists.
    """

    def __init__(self, temp_root: Optional[str] = None, retention_hours: Optional[float] = None):
        self.temp_root = Path(temp_root or settings.chain_temp_root)
        self.retention_hours = (
            retention_hours if retention_hours is not None else settings.CHAIN_FAILED_DIR_RETENTION_HOURS
        )

    def workdir_for(self, job_id: str) -> str:
        return str(self.temp_root / job_id)

    def ensure_workdir(self, job_id: str) -> str:
        path = self.workdir_for(job_id)
        os.makedirs(path, exist_ok=True)
        return path

    def remove_workdir(self, job_id: str) -> bool:
        path = Path(self.workdir_for(job_id))
        if not path.exists():
            return False
        try:
            shutil.rmtree(path)
            logger.info(f"Removed working directory for {job_id}")
            return True
        except OSError as e:
            logger.warning(f"Could not remove working directory for {job_id}: {e}")
            return False

    def _is_expired(self, path: Path, now: float) -> bool:
        try:
            age_hours = (now - path.stat().st_mtime) / 3600
        except OSError:
            return False
        return age_hours >= self.retention_hours

    async def sweep(self, repository, now: Optional[float] = None) -> Dict[str, int]:
        stats = {"scanned": 0, "removed": 0}
        if not self.temp_root.exists():
            return stats

        now = now if now is not None else time.time()
        for entry in self.temp_root.iterdir():
            if not entry.is_dir():
                continue
            stats["scanned"] += 1
            if not self._is_expired(entry, now):
                continue

            job = await repository.get_by_id(entry.name)
            if job is not None and not is_chain_terminal(ChainStatus(job["status"])):
                continue

            reason = "orphaned" if job is None else job.get("status")
            if self.remove_workdir(entry.name):
                stats["removed"] += 1
                logger.info(f"Reclaimed {reason} working directory {entry.name}")

        if stats["removed"]:
            logger.info(f"Workdir sweep: removed {stats['removed']} of {stats['scanned']} directories")
        return stats
