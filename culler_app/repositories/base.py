"""Repository base class used by all concrete repositories."""
import json
import logging
import os
import tempfile
from typing import Any

from ..errors import PersistenceFailure


def atomic_write_json(path: str, data: Any) -> None:
    """Write *data* as JSON to *path* (write-then-rename).

    Raises:
        PersistenceFailure: If serialising, writing or renaming fails.
    """
    dir_name = os.path.dirname(os.path.abspath(path))
    try:
        os.makedirs(dir_name, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=dir_name, suffix='.tmp')
    except OSError as exc:
        raise PersistenceFailure(f"Could not write {path}: {exc}") from exc
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as fh:
            json.dump(data, fh, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as exc:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise PersistenceFailure(f"Could not write {path}: {exc}") from exc


class BaseRepository:
    """Provides JSON-backed persistence for a single data file.

    Sub-classes call :meth:`_load` to read initial data from disk and
    :meth:`_save` to persist data back.  Repositories keep an in-memory copy
    in ``self.data``; callers mutate that copy and then call ``save`` to
    persist the change.
    """

    def __init__(self, file_path: str) -> None:
        self._path = file_path
        self._log = logging.getLogger(f'culler.repository.{type(self).__name__}')

    @property
    def path(self) -> str:
        return self._path

    def _load(self, default: Any) -> Any:
        """Load JSON from *self._path*, returning *default* on missing/corrupt file."""
        if os.path.exists(self._path):
            try:
                with open(self._path, 'r', encoding='utf-8') as fh:
                    return json.load(fh)
            except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
                self._log.warning("Could not load %s: %s", self._path, exc)
        return default

    def _save(self, data: Any) -> None:
        """Write *data* as JSON to *self._path*.

        Raises:
            PersistenceFailure: On any I/O or serialisation error.
        """
        atomic_write_json(self._path, data)
