"""
Per-invocation state shared by the CLI commands.

The configuration is read on first use, so ``checkpoint list`` works without
a configuration file. Loading it also applies its ``logging`` section,
except where a command-line option already chose the value.
"""

from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from bucket_migration.client.exceptions import ConfigurationError
from bucket_migration.config import MigrationConfig, StateConfig, load_config_from_yaml
from bucket_migration.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class MigrationContext:
    """
    Context object for CLI commands.

    Attributes:
        config_path: Path to configuration file
        log_level: Console level given on the command line, if any
        log_file: Log file given on the command line, if any
    """

    config_path: Path | None = None
    log_level: str | None = None
    log_file: Path | None = None

    _config: MigrationConfig | None = field(default=None, init=False, repr=False)

    @property
    def config(self) -> MigrationConfig:
        """Load the configuration once.

        Raises:
            ConfigurationError: If no path was given or the file is invalid
        """
        if self._config is not None:
            return self._config

        if self.config_path is None:
            raise ConfigurationError(
                "Configuration file path not provided. "
                "Use --config option or set BUCKET_BRIDGE_CONFIG environment variable."
            )

        try:
            self._config = load_config_from_yaml(self.config_path)
        except (FileNotFoundError, ValueError, ValidationError) as e:
            raise ConfigurationError(str(e)) from e

        self._apply_logging(self._config)
        logger.debug(
            "config_loaded",
            config_path=str(self.config_path),
            profiles=[p.name for p in self._config.profiles],
        )
        return self._config

    def _apply_logging(self, config: MigrationConfig) -> None:
        settings = config.logging
        log_file = self.log_file or (Path(settings.file) if settings.file else None)
        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)

        configure_logging(
            level=self.log_level or settings.level,
            log_format=settings.format,
            log_file=str(log_file) if log_file else None,
            file_level=settings.file_level,
        )

    @property
    def state_dir(self) -> Path:
        """Checkpoint directory from the configuration, or the default one."""
        if self.config_path is None:
            return StateConfig().path
        return self.config.state.path
