"""Registry of configured data sources."""

from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional

from loguru import logger

from query_health_checks.backends import Backend, build_backend
from query_health_checks.data_source import DataSource
from query_health_checks.error_classifier import ErrorClassifier
from query_health_checks.errors import ConfigurationError
from query_health_checks.models.data_source_config import DataSourceConfig
from query_health_checks.result_cache import ResultCache


class DataSourceRegistry:
    """Read-only map of data source identifiers to DataSources.

    Built once from configuration. Unknown identifiers fall back to the first
    configured data source.
    """

    def __init__(
        self,
        configs: Mapping[str, DataSourceConfig],
        cache: Optional[ResultCache] = None,
        classifier: Optional[ErrorClassifier] = None,
        backend_factory: Callable[[DataSourceConfig], Backend] = build_backend,
        debug: bool = False,
    ) -> None:
        """Initialize the registry.

        Args:
            configs: Data source configurations keyed by identifier, in configured order.
            cache: The result cache shared by every data source.
            classifier: The error classifier used to recognise timeouts.
            backend_factory: Builds the backend adapter for a configuration.
            debug: Enable debug logging.

        Raises:
            ConfigurationError: If no data source is configured.
        """
        if not configs:
            raise ConfigurationError("No data sources configured")

        self.cache = cache or ResultCache()
        self.debug = debug
        data_sources: Dict[str, DataSource] = {}
        for ds_id, config in configs.items():
            data_sources[ds_id] = DataSource(
                config,
                cache=self.cache,
                classifier=classifier,
                backend=backend_factory(config),
                debug=debug,
            )
        self._data_sources = MappingProxyType(data_sources)
        self.default_id = next(iter(data_sources))

        if self.debug:
            logger.debug(
                f"[INIT] Data source registry built: {', '.join(data_sources)} (default {self.default_id})"
            )

    def get(self, data_source_id: Optional[str]) -> DataSource:
        """Get a data source by identifier.

        Args:
            data_source_id: The data source identifier.

        Returns:
            DataSource: The data source, or the default one if the id is unknown.
        """
        data_source = self._data_sources.get(data_source_id)
        if data_source is None:
            logger.warning(
                f"[CONFIG] Unknown data source {data_source_id!r}, using {self.default_id!r}"
            )
            return self._data_sources[self.default_id]
        return data_source

    def __getitem__(self, data_source_id: Optional[str]) -> DataSource:
        return self.get(data_source_id)

    def __contains__(self, data_source_id: object) -> bool:
        return data_source_id in self._data_sources

    def __len__(self) -> int:
        return len(self._data_sources)

    def get_ids(self) -> List[str]:
        return list(self._data_sources)

    def close_all(self) -> None:
        """Close every data source connection."""
        for ds_id, data_source in self._data_sources.items():
            try:
                data_source.close()
            except Exception as e:
                logger.warning(f"[CONNECT] Error closing data source {ds_id}: {e}")
