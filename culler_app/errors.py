"""Exceptions raised by the culler services.

Every failure here is recoverable: the HTTP layer and the CLI catch these
and turn them into a message for the user.
"""


class CullerError(Exception):
    """Base class for all culler errors."""


class InvalidInput(CullerError):
    """A required value was missing or malformed.  No state was changed."""


class EmptySelection(CullerError):
    """Tried to advance a round that has no kept images."""

    def __init__(self, round_number: int) -> None:
        super().__init__(f"No images selected in round {round_number}")
        self.round_number = round_number


class RequiresConfirmation(CullerError):
    """The next round already has selections; re-run with ``force=True``."""

    def __init__(self, next_round: int, existing: int) -> None:
        super().__init__(
            f"Round {next_round} already has {existing} selection(s). Overwrite?")
        self.next_round = next_round
        self.existing = existing


class ExportFailure(CullerError):
    """Writing a round snapshot failed."""


class PersistenceFailure(CullerError):
    """Writing the application document failed."""
