"""
Backup utility for the local payload store.
Creates a timestamped copy of the store file before a remote load overwrites the cache.
"""
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional
import logging

from mealweek.utilities.config import BACKUP_KEEP

logger = logging.getLogger(__name__)

_SEP = "__"


class BackupManager:
    """Manages rotating backups of data files."""

    def __init__(self, data_dir: Path, backup_dir: Path = None, keep: int = BACKUP_KEEP):
        self.data_dir = Path(data_dir)
        self.backup_dir = Path(backup_dir) if backup_dir else (self.data_dir / 'backups')
        self.keep = keep

    def create_backup(self, filename: str) -> Optional[Path]:
        """Create a timestamped backup of a data file; returns the backup path."""
        source = self.data_dir / filename
        if not source.exists():
            logger.warning(f"File not found for backup: {filename}")
            return None
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
            destination = self.backup_dir / f"{source.stem}{_SEP}{timestamp}{source.suffix}"
            shutil.copy2(source, destination)
        except OSError as e:
            logger.error(f"Backup failed for {filename}: {e}")
            return None
        logger.info(f"Backup created: {destination.name}")
        self._cleanup_old_backups(source.name)
        return destination

    def _backups_for(self, filename: str) -> List[Path]:
        pattern = f"{Path(filename).stem}{_SEP}*{Path(filename).suffix}"
        # timestamped names sort chronologically
        return sorted(self.backup_dir.glob(pattern), key=lambda p: p.name)

    def _cleanup_old_backups(self, filename: str):
        """Remove old backups, keeping only the most recent ones."""
        backups = self._backups_for(filename)
        for backup in backups[:-self.keep] if self.keep > 0 else backups:
            try:
                backup.unlink()
                logger.info(f"Removed old backup: {backup.name}")
            except OSError as e:
                logger.error(f"Failed to remove old backup {backup.name}: {e}")

    def restore_backup(self, backup_filename: str) -> bool:
        """Restore a specific backup file over its original."""
        backup_path = self.backup_dir / backup_filename
        if not backup_path.exists() or _SEP not in backup_path.stem:
            logger.error(f"Backup not found: {backup_filename}")
            return False

        original_name = backup_path.stem.rsplit(_SEP, 1)[0] + backup_path.suffix
        destination = self.data_dir / original_name
        if destination.exists():
            self.create_backup(destination.name)
        try:
            shutil.copy2(backup_path, destination)
        except OSError as e:
            logger.error(f"Restore failed for {backup_filename}: {e}")
            return False
        logger.info(f"Restored backup: {backup_filename} -> {original_name}")
        return True

    def list_backups(self, filename: str = None) -> list:
        """List backups, newest first."""
        if not self.backup_dir.exists():
            return []
        backups = self._backups_for(filename) if filename else sorted(self.backup_dir.glob("*"), key=lambda p: p.name)
        return [
            {
                'name': b.name,
                'size': b.stat().st_size,
                'created': datetime.fromtimestamp(b.stat().st_mtime).strftime('%Y-%m-%d %H:%M:%S')
            }
            for b in reversed(backups)
        ]
