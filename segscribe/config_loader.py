"""Handles loading configuration from YAML files."""

import yaml
import os
import logging
from typing import Any, Dict, Optional
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    'temp_dir': 'split_audio',
    'data_dir': 'data',
    'log_dir': 'logs',
    'log_file': 'segscribe.log',
    'ffmpeg_path': None,
    'max_segment_bytes': 10 * 1024 * 1024,
    'bitrate_kbps': 128,
    'max_workers': 4,
    'segment_timeout_secs': 600,
    'transcription_retries': 0,
    'keep_segments': False,
    'gap_marker': None,
    'api_key_env': 'OPENAI_API_KEY',
    'transcription_url': 'https://api.openai.com/v1/audio/transcriptions',
    'transcription_model': 'whisper-1',
    'completion_url': 'https://api.openai.com/v1/chat/completions',
    'completion_model': 'gpt-4o-mini',
}

# key -> smallest accepted value
_INTEGER_BOUNDS = {
    'max_segment_bytes': 1,
    'bitrate_kbps': 1,
    'max_workers': 1,
    'transcription_retries': 0,
}

class ConfigLoader:
    """Loads configuration settings from a YAML file and fills in defaults."""

    def load_config(self, config_path: str) -> dict:
        """
        Loads configuration from the specified YAML file path.

        Keys missing from the file are taken from ``DEFAULT_CONFIG``.

        Args:
            config_path: The path to the YAML configuration file.

        Returns:
            A dictionary containing the validated configuration settings.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file cannot be parsed as YAML, its root is
                              not a mapping, or a numeric setting is out of range.
        """
        logger.info(f"Attempting to load configuration from: {config_path}")
        if not os.path.exists(config_path):
            logger.error(f"Configuration file not found at path: {config_path}")
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if not os.path.isfile(config_path):
            logger.error(f"Configuration path is not a file: {config_path}")
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Invalid YAML format in {config_path}: {e}") from e
        except OSError as e:
            logger.error(f"Error reading configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Could not read configuration file {config_path}: {e}") from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            logger.error(f"Configuration file {config_path} did not load as a dictionary (root object).")
            raise ConfigurationError(f"Invalid YAML structure in {config_path}. Root must be a mapping (dictionary).")

        config = self.with_defaults(loaded)
        self.validate(config)
        logger.info(f"Configuration loaded successfully from {config_path}")
        return config

    @staticmethod
    def with_defaults(overrides: Optional[dict] = None) -> dict:
        """Returns a copy of ``DEFAULT_CONFIG`` updated with ``overrides``."""
        config = dict(DEFAULT_CONFIG)
        config.update(overrides or {})
        return config

    @staticmethod
    def validate(config: dict) -> None:
        """
        Checks the numeric settings used to size and schedule the pipeline.

        Raises:
            ConfigurationError: If a setting has the wrong type or is out of range.
        """
        for key, minimum in _INTEGER_BOUNDS.items():
            value = config.get(key)
            if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
                raise ConfigurationError(f"'{key}' must be an integer >= {minimum}, got {value!r}")

        timeout = config.get('segment_timeout_secs')
        if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
            raise ConfigurationError(f"'segment_timeout_secs' must be a positive number or null, got {timeout!r}")

def resolve_api_key(config: dict) -> str:
    """
    Reads the bearer credential from the environment variable named in the config.

    Raises:
        ConfigurationError: If the variable is unset or empty.
    """
    env_name = config.get('api_key_env') or DEFAULT_CONFIG['api_key_env']
    api_key = os.environ.get(env_name, '').strip()
    if not api_key:
        raise ConfigurationError(f"Environment variable {env_name} is not set.")
    return api_key
