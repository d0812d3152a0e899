"""Source adapters for company research."""

from .base import BaseConnector, classify_http_error
from .company_site import CompanySiteConnector
from .job_boards import JobBoardConnector
from .code_repos import CodeRepoConnector
from .news import NewsConnector
from .source_manager import SourceManager

__all__ = [
    "BaseConnector",
    "classify_http_error",
    "CompanySiteConnector",
    "JobBoardConnector",
    "CodeRepoConnector",
    "NewsConnector",
    "SourceManager",
]
