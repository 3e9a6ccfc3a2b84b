"""Services package — expose all concrete services from one import."""
from .candidate_source import DirectoryCandidateSource, is_image_file
from .project_service import ProjectService
from .round_service import RoundService

__all__ = [
    'DirectoryCandidateSource',
    'is_image_file',
    'ProjectService',
    'RoundService',
]
