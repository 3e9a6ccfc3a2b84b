"""Repository for the application document (active project + all projects)."""
import os
import uuid
from typing import Any, Dict, Optional

from ..errors import PersistenceFailure
from .base import BaseRepository

DEFAULT_PROJECT_ID = 'default'
DEFAULT_PROJECT_NAME = 'Default Project'

# Legacy field name -> current field name.
_RENAMED_FIELDS = {
    'filePath': 'sourceDirectory',
    'xSelected': 'auxiliaryLabel',
    'lastFileName': 'lastViewedFile',
}
_OBSOLETE_FIELDS = ('roundImages', 'currentRoundSelections')


def make_project(project_id: str, name: str, source_directory: str,
                 auxiliary_label: str = '') -> Dict[str, Any]:
    """Return a new project dict in round 1 with no selections."""
    return {
        'id': project_id,
        'name': name,
        'sourceDirectory': source_directory,
        'auxiliaryLabel': auxiliary_label,
        'currentRound': 1,
        'roundSelections': {},
        'lastViewedFile': '',
    }


def _migrate_project(project: Dict[str, Any]) -> bool:
    changed = False

    if not isinstance(project.get('id'), str) or not project['id']:
        project['id'] = uuid.uuid4().hex
        changed = True

    for old, new in _RENAMED_FIELDS.items():
        if old in project:
            if new not in project:
                project[new] = project[old]
            del project[old]
            changed = True

    try:
        current_round = int(project.get('currentRound', 1))
    except (TypeError, ValueError):
        current_round = 1
    current_round = max(current_round, 1)
    # Round keys are str(currentRound); 2.0 or True would give "2.0"/"True".
    if (type(project.get('currentRound')) is not int
            or project['currentRound'] != current_round):
        project['currentRound'] = current_round
        changed = True

    if not isinstance(project.get('roundSelections'), dict):
        project['roundSelections'] = {}
        legacy = project.get('currentRoundSelections')
        if isinstance(legacy, list) and legacy:
            project['roundSelections'][str(current_round)] = list(legacy)
        changed = True

    for field in _OBSOLETE_FIELDS:
        if field in project:
            del project[field]
            changed = True

    # JSON keys are always strings; documents built in memory may not be.
    selections = project['roundSelections']
    for key in [k for k in selections if not isinstance(k, str)]:
        selections[str(key)] = selections.pop(key)
        changed = True

    for field, default in (('name', DEFAULT_PROJECT_NAME),
                           ('sourceDirectory', ''),
                           ('auxiliaryLabel', ''),
                           ('lastViewedFile', '')):
        if not isinstance(project.get(field), str):
            project[field] = default
            changed = True

    return changed


def migrate_document(doc: Dict[str, Any]) -> bool:
    """Upgrade legacy project records in *doc* in place.

    Safe to run on every load: an already-migrated document is left
    untouched.

    Returns:
        ``True`` if anything was changed.
    """
    changed = False
    projects = [p for p in doc.get('projects', []) if isinstance(p, dict)]
    if len(projects) != len(doc.get('projects', [])):
        doc['projects'] = projects
        changed = True
    for project in projects:
        if _migrate_project(project):
            changed = True
    return changed


class DocumentRepository(BaseRepository):
    """Loads and saves the whole application state as one JSON document.

    Schema::

        {
            "activeProjectId": "<project id>",
            "projects": [
                {
                    "id":               <str>,
                    "name":             <str>,
                    "sourceDirectory":  <str>,
                    "auxiliaryLabel":   <str>,
                    "currentRound":     <int >= 1>,
                    "roundSelections":  {"<round>": ["<filename>", ...]},
                    "lastViewedFile":   <str>
                }
            ]
        }

    The document is loaded once in ``__init__``.  Every mutation made by the
    services is followed by :meth:`save`, which rewrites the file in full.
    """

    def __init__(self, file_path: str = 'data/projects.json',
                 default_source_dir: str = '',
                 default_auxiliary_label: str = '') -> None:
        super().__init__(file_path)
        self.default_source_dir = default_source_dir
        self.default_auxiliary_label = default_auxiliary_label
        self.last_error: Optional[str] = None
        self.data: Dict[str, Any] = self.load()

    def default_document(self) -> Dict[str, Any]:
        """Return a fresh document holding a single default project."""
        project = make_project(DEFAULT_PROJECT_ID, DEFAULT_PROJECT_NAME,
                               self.default_source_dir,
                               self.default_auxiliary_label)
        return {'activeProjectId': DEFAULT_PROJECT_ID, 'projects': [project]}

    def load(self) -> Dict[str, Any]:
        """Read, migrate and return the document.

        A missing or unreadable file yields :meth:`default_document`.  The
        (possibly upgraded) document is written back once so that the file
        on disk is always in the current format.  An existing file that
        gets replaced by the default document is first moved to
        ``<path>.bak``; if that move fails the file is left alone and the
        default document is only kept in memory.
        """
        raw = self._load(None)
        replaced = False
        if (not isinstance(raw, dict) or not isinstance(raw.get('projects'), list)
                or not raw['projects']):
            if raw is not None:
                self._log.warning("Ignoring malformed document in %s", self._path)
            doc = self.default_document()
            changed = True
            replaced = True
        else:
            doc = raw
            changed = migrate_document(doc)
            if not doc['projects']:
                doc = self.default_document()
                replaced = True
            if 'activeProjectId' not in doc:
                doc['activeProjectId'] = doc['projects'][0]['id']
                changed = True
        self.data = doc
        if replaced and os.path.exists(self._path) and not self._backup():
            return doc
        if changed:
            self._log.info("Writing migrated document to %s", self._path)
            self.save()
        return doc

    def _backup(self) -> bool:
        """Move the current file to ``<path>.bak``.  Returns ``False`` on failure."""
        backup_path = self._path + '.bak'
        try:
            os.replace(self._path, backup_path)
        except OSError as exc:
            self.last_error = f"Could not back up {self._path}: {exc}"
            self._log.error("%s; leaving it in place", self.last_error)
            return False
        self._log.warning("Moved unusable document %s to %s", self._path, backup_path)
        return True

    def save(self) -> bool:
        """Persist the in-memory document.

        Failures are logged and remembered in :attr:`last_error`; the
        in-memory document is kept as is so the caller can retry.

        Returns:
            ``True`` if the file was written.
        """
        try:
            self._save(self.data)
        except PersistenceFailure as exc:
            self.last_error = str(exc)
            self._log.error("Error saving projects: %s", exc)
            return False
        self.last_error = None
        return True
