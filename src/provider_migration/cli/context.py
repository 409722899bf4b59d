"""
CLI context for Provider Migrator.

This module provides the context object that is passed to all CLI commands,
holding the configuration and the lazily built orchestrator.
"""

from dataclasses import dataclass, field
from pathlib import Path

import pydantic

from provider_migration.client.exceptions import ConfigurationError
from provider_migration.config import MigratorConfig, load_config_from_yaml
from provider_migration.migration.coordinator import MigrationOrchestrator
from provider_migration.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class MigratorContext:
    """
    Context object for CLI commands.

    Attributes:
        config_path: Path to configuration file (environment-only config when None)
        log_level: Console log level given on the command line
        log_file: Log file given on the command line
    """

    config_path: Path | None = None
    log_level: str | None = None
    log_file: Path | None = None

    _config: MigratorConfig | None = field(default=None, init=False, repr=False)
    _orchestrator: MigrationOrchestrator | None = field(default=None, init=False, repr=False)

    @property
    def config(self) -> MigratorConfig:
        """Get or load configuration."""
        if self._config is None:
            try:
                if self.config_path is None:
                    logger.debug("Loading configuration from environment")
                    self._config = MigratorConfig()
                else:
                    logger.debug("Loading configuration", config_path=str(self.config_path))
                    self._config = load_config_from_yaml(self.config_path)
            except (pydantic.ValidationError, ValueError, FileNotFoundError) as e:
                raise ConfigurationError(f"Invalid configuration: {e}") from e
            self._apply_logging_config(self._config)

        return self._config

    def _apply_logging_config(self, config: MigratorConfig) -> None:
        """Reconfigure logging from the loaded file; command-line flags still win."""
        configure_logging(
            level=self.log_level or config.logging.level,
            log_format=config.logging.format,
            log_file=str(self.log_file) if self.log_file else config.logging.file,
            file_level=config.logging.file_level,
        )

    @property
    def orchestrator(self) -> MigrationOrchestrator:
        """Get or create the migration orchestrator."""
        if self._orchestrator is None:
            logger.debug("Creating orchestrator", db_path=self.config.state.db_path)
            self._orchestrator = MigrationOrchestrator.from_config(self.config)

        return self._orchestrator

    async def aclose(self) -> None:
        """Close the orchestrator (registry client and database)."""
        if self._orchestrator is not None:
            await self._orchestrator.close()
            self._orchestrator = None

    def cleanup(self) -> None:
        """Release the database if no command closed the orchestrator."""
        if self._orchestrator is not None:
            logger.debug("Disposing database engine")
            self._orchestrator.db.dispose()
