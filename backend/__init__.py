from config.settings import get_settings
from backend.services.research_service import ResearchService


def create_service(settings=None, pipeline_factory=None, recover=True):
    """
    Build the research service.

    recover=False is for read-only callers (status lookups, cancellation):
    unfinished jobs stay untouched in the store instead of being resumed.
    """
    settings = settings or get_settings()

    service = ResearchService(settings, pipeline_factory=pipeline_factory)

    if recover:
        # Pick up jobs an earlier process left unfinished
        service.recover_jobs()

    return service
