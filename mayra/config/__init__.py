"""
Configuration package for the Mayra live session engine.

This package contains:
- models: Pydantic models for every configuration section
- loaders: YAML file loading and parsing
- security: API key injection (environment only)
- defaults: Environment-driven default values
"""

from typing import List, Tuple

import structlog

from mayra.config.defaults import (
    apply_audio_defaults,
    apply_logging_defaults,
    apply_storage_defaults,
    apply_tools_defaults,
)
from mayra.config.loaders import load_yaml_with_env_expansion, resolve_config_path
from mayra.config.models import (
    AppConfig,
    AudioConfig,
    DisplayConfig,
    LiveConfig,
    LoggingConfig,
    MetricsConfig,
    NetworkConfig,
    StorageConfig,
    ToolsConfig,
)
from mayra.config.security import inject_live_api_key

logger = structlog.get_logger(__name__)


def load_config(path: str = "config/mayra.yaml") -> AppConfig:
    """
    Load and validate configuration from YAML file.

    Args:
        path: Path to YAML configuration file (absolute or relative to project root)

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If configuration file doesn't exist
        yaml.YAMLError: If YAML parsing fails
        pydantic.ValidationError: If a section has the wrong shape
    """
    # Phase 1: Load YAML file with environment variable expansion
    path = resolve_config_path(path)
    config_data = load_yaml_with_env_expansion(path)

    # Phase 2: Security - credentials from environment variables only
    inject_live_api_key(config_data)

    # Phase 3: Apply default values
    apply_storage_defaults(config_data)
    apply_audio_defaults(config_data)
    apply_tools_defaults(config_data)
    apply_logging_defaults(config_data)

    # Phase 4: Validate and return
    return AppConfig(**config_data)


def validate_config(config: AppConfig) -> Tuple[List[str], List[str]]:
    """Validate configuration before starting the assistant.

    Returns:
        (errors, warnings): errors block startup, warnings are logged only.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not config.live.endpoint.startswith(("wss://", "ws://")):
        errors.append(f"Invalid live endpoint: {config.live.endpoint} (must be a ws:// or wss:// URL)")
    if config.audio.input_sample_rate <= 0 or config.audio.output_sample_rate <= 0:
        errors.append("Audio sample rates must be positive")
    if not 0.0 <= config.audio.smoothing < 1.0:
        errors.append(f"Volume smoothing {config.audio.smoothing} out of range [0, 1)")
    if config.tools.shutdown_grace_sec < 0:
        errors.append("tools.shutdown_grace_sec must not be negative")

    if not config.live.api_key:
        warnings.append("No Gemini API key configured (set GOOGLE_API_KEY, GEMINI_API_KEY or API_KEY)")
    if config.logging.level.lower() == "debug":
        warnings.append("Debug logging enabled (transcripts and tool arguments appear in logs)")
    if config.metrics.enabled:
        warnings.append(f"Prometheus metrics exposed on port {config.metrics.port}; ensure it is not publicly reachable")
    if config.live.endpoint.startswith("ws://"):
        warnings.append("Live endpoint is not using TLS; the API key is sent in clear text")

    return errors, warnings


__all__ = [
    'AppConfig',
    'AudioConfig',
    'DisplayConfig',
    'LiveConfig',
    'LoggingConfig',
    'MetricsConfig',
    'NetworkConfig',
    'StorageConfig',
    'ToolsConfig',
    'load_config',
    'validate_config',
]
