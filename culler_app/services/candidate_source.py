"""Round-1 candidate lookup: image files in a directory."""
import logging
import os
from typing import List, Optional

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.bmp', '.webp')


def is_image_file(filename: str) -> bool:
    """Return ``True`` if *filename* has a recognised image extension."""
    return os.path.splitext(filename)[1].lower() in IMAGE_EXTENSIONS


class DirectoryCandidateSource:
    """Lists image files in a directory.

    Never raises: a missing or unreadable directory yields an empty list.
    """

    def __init__(self) -> None:
        self._log = logging.getLogger('culler.candidates')

    def list_candidates(self, directory: str) -> List[str]:
        """Return the image file names in *directory*, sorted by name."""
        if not directory or not os.path.isdir(directory):
            return []
        try:
            names = os.listdir(directory)
        except OSError as exc:
            self._log.warning("Error reading directory %s: %s", directory, exc)
            return []
        return sorted(
            name for name in names
            if is_image_file(name) and os.path.isfile(os.path.join(directory, name))
        )

    def resolve_file(self, directory: str, filename: str) -> Optional[str]:
        """Return the absolute path of *filename* inside *directory*.

        Returns ``None`` if the file doesn't exist or would resolve outside
        *directory*.
        """
        if not directory or not filename:
            return None
        root = os.path.realpath(directory)
        full = os.path.realpath(os.path.join(root, filename))
        try:
            inside = os.path.commonpath([root, full]) == root
        except ValueError:
            inside = False
        if not inside:
            self._log.warning("Rejected path outside %s: %s", directory, filename)
            return None
        if not os.path.isfile(full):
            return None
        return full
