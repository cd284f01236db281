"""
YAML snapshot storage, one file per tournament.

Writes go to a temporary file that replaces the snapshot in one step, under
a per-tournament file lock, so a reader sees either the previous batch or the
new one and never half of it.
"""
import logging
import os
import re
from typing import List, Optional

import yaml
from filelock import FileLock

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]*$')


class TournamentStore:
    def __init__(self, data_dir: str, lock_timeout: float = 10):
        self.data_dir = data_dir
        self.lock_timeout = lock_timeout
        os.makedirs(self.data_dir, exist_ok=True)

    def _path(self, tournament_id: str) -> str:
        if not _SAFE_ID.match(tournament_id or ''):
            raise ConfigurationError(
                f"Tournament id '{tournament_id}' may only contain letters, digits, '-' and '_'."
            )
        return os.path.join(self.data_dir, f"{tournament_id}.yaml")

    def _lock(self, tournament_id: str) -> FileLock:
        return FileLock(self._path(tournament_id) + '.lock', timeout=self.lock_timeout)

    def save(self, snapshot: dict):
        """Atomically replace the stored snapshot of a tournament."""
        path = self._path(snapshot['tournament_id'])
        tmp_path = path + '.tmp'
        with self._lock(snapshot['tournament_id']):
            with open(tmp_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(snapshot, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, path)
        logger.debug("Saved tournament %s (version %s)", snapshot['tournament_id'], snapshot.get('version'))

    def load(self, tournament_id: str) -> Optional[dict]:
        path = self._path(tournament_id)
        if not os.path.exists(path):
            return None
        with self._lock(tournament_id):
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        if not data:
            logger.warning("Snapshot file %s is empty", path)
            return None
        return data

    def delete(self, tournament_id: str) -> bool:
        path = self._path(tournament_id)
        with self._lock(tournament_id):
            if not os.path.exists(path):
                return False
            os.remove(path)
        lock_path = path + '.lock'
        if os.path.exists(lock_path):
            os.remove(lock_path)
        return True

    def list_ids(self) -> List[str]:
        ids = []
        for filename in sorted(os.listdir(self.data_dir)):
            if filename.endswith('.yaml'):
                ids.append(filename[:-len('.yaml')])
        return ids
