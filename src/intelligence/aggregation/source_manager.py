"""Source Manager: the fixed registry of source adapters and their configs."""

from typing import Optional
import logging

from .base import BaseConnector
from .code_repos import CodeRepoConnector
from .company_site import CompanySiteConnector
from .job_boards import JobBoardConnector
from .news import NewsConnector
from ..models.content import SourceConfig, SourceKey


logger = logging.getLogger(__name__)


class SourceManager:
    """
    Maps every SourceKey to one connector and one SourceConfig.
    New sources are added by extending SourceKey and CONNECTOR_TYPES.
    """

    CONNECTOR_TYPES = {
        SourceKey.SITE: CompanySiteConnector,
        SourceKey.JOBS: JobBoardConnector,
        SourceKey.REPOS: CodeRepoConnector,
        SourceKey.NEWS: NewsConnector,
    }

    def __init__(
        self,
        configs: Optional[dict[SourceKey, SourceConfig]] = None,
        connectors: Optional[dict[SourceKey, BaseConnector]] = None,
    ):
        self.configs: dict[SourceKey, SourceConfig] = {
            key: SourceConfig(source=key.value) for key in SourceKey
        }
        self.configs.update(configs or {})

        self.connectors: dict[SourceKey, BaseConnector] = {}
        for key in SourceKey:
            if connectors and key in connectors:
                self.connectors[key] = connectors[key]
            else:
                self.connectors[key] = self.CONNECTOR_TYPES[key]()

        missing = [k.value for k in SourceKey if k not in self.connectors]
        if missing:
            raise ValueError(f"No connector registered for: {', '.join(missing)}")

    @classmethod
    def from_defaults(
        cls,
        defaults: dict,
        connectors: Optional[dict[SourceKey, BaseConnector]] = None,
    ) -> "SourceManager":
        """Build from a {source: settings-dict} mapping such as SOURCE_DEFAULTS."""
        configs = {}
        for name, values in defaults.items():
            key = SourceKey(name)
            configs[key] = SourceConfig(source=key.value, **values)
        return cls(configs=configs, connectors=connectors)

    def adapter_for(self, source: SourceKey) -> BaseConnector:
        return self.connectors[SourceKey(source)]

    def config_for(self, source: SourceKey) -> SourceConfig:
        return self.configs[SourceKey(source)]

    def get_stats(self) -> dict:
        """
        Get statistics for all sources.
        """
        return {
            key.value: connector.get_stats()
            for key, connector in self.connectors.items()
        }
