"""Repository for per-round selection snapshots ({round, selections})."""
import logging
import os
from typing import Dict, List

from ..errors import ExportFailure, PersistenceFailure
from .base import atomic_write_json

SNAPSHOT_NAME = 'selection_round_{round}.json'


class SnapshotRepository:
    """Writes one JSON file per exported round into a project's directory.

    Schema::

        {"round": <int>, "selections": ["<filename>", ...]}
    """

    def __init__(self) -> None:
        self._log = logging.getLogger('culler.repository.SnapshotRepository')

    @staticmethod
    def path_for(directory: str, round_number: int) -> str:
        """Return the snapshot path for *round_number* inside *directory*."""
        return os.path.join(directory, SNAPSHOT_NAME.format(round=round_number))

    def write(self, directory: str, round_number: int,
              selections: List[str]) -> str:
        """Write the snapshot and return its path.

        Raises:
            ExportFailure: If *directory* is empty or the file can't be written.
        """
        if not directory:
            raise ExportFailure("Project has no source directory")
        if not os.path.isdir(directory):
            raise ExportFailure(f"Directory does not exist: {directory}")
        path = self.path_for(directory, round_number)
        payload: Dict = {'round': round_number, 'selections': list(selections)}
        try:
            atomic_write_json(path, payload)
        except PersistenceFailure as exc:
            raise ExportFailure(str(exc)) from exc
        self._log.info("Exported round %d (%d selections) to %s",
                       round_number, len(selections), path)
        return path
