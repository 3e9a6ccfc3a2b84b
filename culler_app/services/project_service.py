"""Business logic for the project collection and the active project."""
import logging
import uuid
from typing import Dict, List, Optional

from ..repositories.document_repository import DocumentRepository, make_project

DEFAULT_NEW_PROJECT_NAME = 'New Project'


class ProjectService:
    """Creates, switches, and deletes projects, delegating persistence to
    :class:`~culler_app.repositories.document_repository.DocumentRepository`.

    Rules
    -----
    * The project list is never empty: deleting the last project is refused.
    * A dangling ``activeProjectId`` is repaired to the first project.
    * Every successful mutation rewrites the document.
    """

    def __init__(self, repository: DocumentRepository) -> None:
        self._repo = repository
        self._log = logging.getLogger('culler.projects')

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def projects(self) -> List[Dict]:
        """Return the in-memory project list (same object as the repo)."""
        return self._repo.data['projects']

    def find(self, project_id: str) -> Optional[Dict]:
        """Return the project with *project_id*, or ``None``."""
        for project in self.projects:
            if project['id'] == project_id:
                return project
        return None

    def get_active(self) -> Optional[Dict]:
        """Return the active project.

        If ``activeProjectId`` doesn't match any project, the first project
        becomes active (and the repair is persisted).  Returns ``None`` only
        when there are no projects at all.
        """
        doc = self._repo.data
        project = self.find(doc.get('activeProjectId'))
        if project is None and self.projects:
            project = self.projects[0]
            self._log.info("Active project %r not found; falling back to %r",
                           doc.get('activeProjectId'), project['id'])
            doc['activeProjectId'] = project['id']
            self._repo.save()
        return project

    def list_projects(self) -> List[Dict]:
        """Return a summary list for the project switcher."""
        active_id = self._repo.data.get('activeProjectId')
        return [
            {
                'id': p['id'],
                'name': p['name'],
                'currentRound': p['currentRound'],
                'active': p['id'] == active_id,
            }
            for p in self.projects
        ]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, name: str = '', source_directory: str = '') -> Dict:
        """Append a new project in round 1 and make it active."""
        project = make_project(
            uuid.uuid4().hex,
            (name or '').strip() or DEFAULT_NEW_PROJECT_NAME,
            (source_directory or '').strip() or self._repo.default_source_dir,
        )
        self.projects.append(project)
        self._repo.data['activeProjectId'] = project['id']
        self._repo.save()
        self._log.info("Created project %r (%s)", project['name'], project['id'])
        return project

    def switch_active(self, project_id: str) -> bool:
        """Make *project_id* active.

        Returns:
            ``True`` if the project exists; ``False`` (no change) otherwise.
        """
        if self.find(project_id) is None:
            return False
        self._repo.data['activeProjectId'] = project_id
        self._repo.save()
        return True

    def delete(self, project_id: str) -> bool:
        """Remove *project_id*.

        Returns:
            ``False`` if it is the last remaining project or doesn't exist.
        """
        if len(self.projects) <= 1:
            self._log.info("Refusing to delete the last project")
            return False
        project = self.find(project_id)
        if project is None:
            return False
        self.projects.remove(project)
        if self._repo.data.get('activeProjectId') == project_id:
            self._repo.data['activeProjectId'] = self.projects[0]['id']
        self._repo.save()
        self._log.info("Deleted project %r (%s)", project['name'], project_id)
        return True

    def rename(self, project_id: str, name: str) -> bool:
        """Change the display name of *project_id*.

        Returns:
            ``False`` if *name* is blank or the project doesn't exist.
        """
        name = (name or '').strip()
        project = self.find(project_id)
        if not name or project is None:
            return False
        project['name'] = name
        self._repo.save()
        return True

    def update_settings(self, auxiliary_label: str,
                        source_directory: str) -> bool:
        """Set the active project's label and source directory.

        Returns:
            ``False`` if there is no active project.
        """
        project = self.get_active()
        if project is None:
            return False
        project['auxiliaryLabel'] = auxiliary_label or ''
        project['sourceDirectory'] = source_directory or ''
        self._repo.save()
        return True
