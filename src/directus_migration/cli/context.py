"""
CLI context manager for Directus Bridge.

This module provides the context object that is passed to all CLI commands,
containing configuration and the clients for the source and target instances.
"""

from dataclasses import dataclass, field
from pathlib import Path

from directus_migration.client.directus_client import DirectusClient
from directus_migration.client.exceptions import ConfigurationError
from directus_migration.config import MigrationConfig, load_config_from_yaml
from directus_migration.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class MigrationContext:
    """
    Context object for CLI commands.

    Attributes:
        config_path: Path to configuration file; the environment is used when absent
        log_level: Console logging level given on the command line
        log_file: Optional log file path
        config: Loaded migration configuration
        source_client: Client for the source Directus instance
        target_client: Client for the target Directus instance
    """

    config_path: Path | None = None
    log_level: str | None = None
    log_file: Path | None = None

    # Lazy-loaded attributes
    _config: MigrationConfig | None = field(default=None, init=False, repr=False)
    _source_client: DirectusClient | None = field(default=None, init=False, repr=False)
    _target_client: DirectusClient | None = field(default=None, init=False, repr=False)

    @property
    def config(self) -> MigrationConfig:
        """Get or load migration configuration."""
        if self._config is None:
            if self.config_path is not None:
                logger.debug("Loading configuration", config_path=str(self.config_path))
                try:
                    self._config = load_config_from_yaml(self.config_path)
                except (FileNotFoundError, ValueError) as e:
                    raise ConfigurationError(str(e)) from e
            else:
                logger.debug("Loading configuration from environment")
                self._config = MigrationConfig()
            logger.debug("Configuration loaded successfully")
            self._configure_logging(self._config)

        return self._config

    def _configure_logging(self, config: MigrationConfig) -> None:
        """Apply the logging section, letting command-line options win."""
        configure_logging(
            level=self.log_level or config.logging.level,
            log_format=config.logging.format,
            log_file=str(self.log_file) if self.log_file else config.logging.file,
            file_level=config.logging.file_level,
        )

    @property
    def source_client(self) -> DirectusClient:
        """Get or create the source Directus client."""
        if self._source_client is None:
            if self.config.source is None:
                raise ConfigurationError(
                    "Source instance not configured. Set source.url and source.token "
                    "in the configuration file or SOURCE__URL and SOURCE__TOKEN."
                )
            logger.debug("Creating source client", url=self.config.source.url)
            self._source_client = DirectusClient.from_config(
                self.config.source, self.config.performance, self.config.logging
            )

        return self._source_client

    @property
    def target_client(self) -> DirectusClient:
        """Get or create the target Directus client."""
        if self._target_client is None:
            if self.config.target is None:
                raise ConfigurationError(
                    "Target instance not configured. Set target.url and target.token "
                    "in the configuration file or TARGET__URL and TARGET__TOKEN."
                )
            logger.debug("Creating target client", url=self.config.target.url)
            self._target_client = DirectusClient.from_config(
                self.config.target, self.config.performance, self.config.logging
            )

        return self._target_client

    async def close(self) -> None:
        """Close any client that was created."""
        if self._source_client is not None:
            await self._source_client.close()
            self._source_client = None

        if self._target_client is not None:
            await self._target_client.close()
            self._target_client = None

        logger.debug("Context cleanup complete")
