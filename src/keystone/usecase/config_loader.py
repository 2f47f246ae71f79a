import logging
import os
from typing import Any, Dict, Optional

import yaml
from dacite import (
    from_dict,
    ForwardReferenceError,
    UnexpectedDataError,
    WrongTypeError,
    MissingValueError,
)
from dotenv import load_dotenv

from keystone.models import EngineOptions, dacite_config


class ConfigLoader:
    """Loads EngineOptions from YAML files."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(__name__)
        # Environment overrides (e.g. KEYSTONE_LOG_LEVEL) may live in a .env file
        load_dotenv()

    def load(self, config_path: str) -> Optional[EngineOptions]:
        """
        Load engine options from the specified YAML file.

        Args:
            config_path: Path to the YAML file

        Returns:
            EngineOptions or None if loading fails
        """
        self._logger.debug(f"Loading engine configuration from: {config_path}")

        try:
            if not os.path.exists(config_path):
                self._logger.error(f"Configuration file not found: {config_path}")
                return None

            with open(config_path, "r", encoding="utf-8") as file:
                data = yaml.safe_load(file) or {}

            # Options may be nested under an 'engine' key next to other sections
            if isinstance(data, dict) and "engine" in data:
                self._logger.debug("Engine options nested under 'engine' key, extracting...")
                data = data["engine"] or {}

            if not isinstance(data, dict):
                self._logger.error(
                    f"Configuration '{config_path}' must be a mapping, got {type(data).__name__}"
                )
                return None

            self._normalize(data)

            try:
                options = from_dict(
                    data_class=EngineOptions, data=data, config=dacite_config()
                )
                self._logger.debug(
                    f"Loaded engine options with {len(options.plugins)} plugins "
                    f"and {len(options.services)} services"
                )
                return options
            except ForwardReferenceError as e:
                self._logger.error(f"Forward reference error in '{config_path}': {e}")
            except UnexpectedDataError as e:
                self._logger.error(f"Unexpected data in '{config_path}': {e}")
            except WrongTypeError as e:
                self._logger.error(f"Wrong type in '{config_path}': {e}")
            except MissingValueError as e:
                self._logger.error(f"Missing required value in '{config_path}': {e}")
            except Exception as e:
                self._logger.error(f"Failed to parse '{config_path}': {e}")

        except yaml.YAMLError as e:
            self._logger.error(f"Invalid YAML in '{config_path}': {e}")
        except Exception as e:
            self._logger.error(f"Error loading '{config_path}': {e}")

        return None

    def _normalize(self, data: Dict[str, Any]) -> None:
        """Accept camelCase runtime option keys such as ``autoStart``."""
        runtime = data.get("options")
        if isinstance(runtime, dict) and "autoStart" in runtime:
            runtime["auto_start"] = runtime.pop("autoStart")
        for key in ("plugins", "services"):
            if key in data and data[key] is None:
                del data[key]


def load_engine_options(config_path: str) -> Optional[EngineOptions]:
    return ConfigLoader().load(config_path)
