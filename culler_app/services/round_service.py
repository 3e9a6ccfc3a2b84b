"""Business logic for rounds: candidates, selections, and round advancement."""
import logging
from typing import Dict, List, Optional

from ..errors import EmptySelection, InvalidInput, RequiresConfirmation
from ..repositories.document_repository import DocumentRepository
from ..repositories.snapshot_repository import SnapshotRepository
from .candidate_source import DirectoryCandidateSource


class RoundService:
    """Runs the round state machine for one project at a time.

    Round 1 draws its candidates from the project's source directory;
    round N draws them from the images kept in round N-1.  Selections are
    stored per round under ``project['roundSelections'][str(round)]``.

    Rules
    -----
    * Advancing with an empty current selection raises
      :class:`~culler_app.errors.EmptySelection`.
    * Advancing over a non-empty next round raises
      :class:`~culler_app.errors.RequiresConfirmation` unless ``force`` is
      set; when it goes ahead, only the next round is cleared.  Rounds
      further ahead keep whatever they had.
    * Selections are never checked against the round's candidates.  Use
      :meth:`stale_selections` to find entries that no longer match.
    """

    def __init__(self, repository: DocumentRepository,
                 candidate_source: Optional[DirectoryCandidateSource] = None,
                 snapshots: Optional[SnapshotRepository] = None) -> None:
        self._repo = repository
        self._source = candidate_source or DirectoryCandidateSource()
        self._snapshots = snapshots or SnapshotRepository()
        self._log = logging.getLogger('culler.rounds')

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def resolve_candidates(self, project: Dict) -> List[str]:
        """Return the images that can be picked in the current round."""
        current = project['currentRound']
        if current == 1:
            return self._source.list_candidates(project['sourceDirectory'])
        return list(project['roundSelections'].get(str(current - 1), []))

    def current_selections(self, project: Dict) -> List[str]:
        """Return the current round's kept images, creating the entry if needed."""
        return project['roundSelections'].setdefault(
            str(project['currentRound']), [])

    def max_round(self, project: Dict) -> int:
        """Return the highest round that is current or has recorded data."""
        rounds = [int(k) for k in project['roundSelections'] if k.isdigit()]
        return max(rounds + [project['currentRound']])

    def round_summary(self, project: Dict) -> List[Dict]:
        """Return ``[{'round': n, 'count': k}, ...]`` for every recorded round."""
        rounds = sorted((int(k), len(v))
                        for k, v in project['roundSelections'].items() if k.isdigit())
        return [{'round': n, 'count': count} for n, count in rounds]

    def stale_selections(self, project: Dict) -> List[str]:
        """Return current-round selections that are no longer candidates.

        Read-only; nothing is removed.
        """
        candidates = set(self.resolve_candidates(project))
        return [f for f in project['roundSelections'].get(
            str(project['currentRound']), []) if f not in candidates]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def toggle_selection(self, project: Dict, filename: str) -> bool:
        """Add *filename* to the current round's selections, or remove it.

        Returns:
            ``True`` if the file is selected afterwards.

        Raises:
            InvalidInput: If *filename* is empty.
        """
        if not filename:
            raise InvalidInput("fileName is required")
        selections = self.current_selections(project)
        if filename in selections:
            selections[:] = [f for f in selections if f != filename]
            selected = False
        else:
            selections.append(filename)
            selected = True
        self._repo.save()
        self._log.debug("Round %d: %s %s", project['currentRound'],
                        'selected' if selected else 'deselected', filename)
        return selected

    def resolve_viewed_file(self, project: Dict,
                            requested: Optional[str] = None) -> str:
        """Return the file to show, updating ``lastViewedFile``.

        An explicit *requested* file is stored as is.  Otherwise a stored
        file that is empty or no longer a candidate is replaced by the first
        candidate (or cleared when there are none).
        """
        if requested:
            project['lastViewedFile'] = requested
            self._repo.save()
            return requested

        current = project.get('lastViewedFile') or ''
        candidates = self.resolve_candidates(project)
        if current and current in candidates:
            return current
        replacement = candidates[0] if candidates else ''
        if replacement != current:
            project['lastViewedFile'] = replacement
            self._repo.save()
        return replacement

    def export_round_snapshot(self, project: Dict) -> str:
        """Write the current round's selections next to the source images.

        Returns:
            Path of the written file.

        Raises:
            ExportFailure: On any I/O error.
        """
        current = project['currentRound']
        return self._snapshots.write(
            project['sourceDirectory'], current,
            project['roundSelections'].get(str(current), []))

    def advance_round(self, project: Dict, force: bool = False) -> int:
        """Move to the next round.

        Returns:
            The new current round.

        Raises:
            EmptySelection: If nothing is selected in the current round.
            RequiresConfirmation: If the next round already has selections
                and *force* is false.
        """
        current = project['currentRound']
        if not project['roundSelections'].get(str(current)):
            raise EmptySelection(current)

        next_round = current + 1
        existing = project['roundSelections'].get(str(next_round))
        if existing and not force:
            raise RequiresConfirmation(next_round, len(existing))
        if existing:
            self._log.info("Clearing %d stale selection(s) in round %d",
                           len(existing), next_round)
            project['roundSelections'][str(next_round)] = []

        project['currentRound'] = next_round
        project['lastViewedFile'] = ''
        self._repo.save()
        return next_round

    def switch_round(self, project: Dict, round_number) -> int:
        """Jump straight to *round_number*, forwards or backwards.

        Raises:
            InvalidInput: If *round_number* isn't a positive integer.
        """
        try:
            round_number = int(round_number)
        except (TypeError, ValueError):
            raise InvalidInput(f"Invalid round: {round_number!r}")
        if round_number < 1:
            raise InvalidInput(f"Invalid round: {round_number}")
        project['currentRound'] = round_number
        project['lastViewedFile'] = ''
        self._repo.save()
        return round_number
