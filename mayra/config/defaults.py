"""
Default value application for configuration.

This module handles environment-driven defaults:
- Storage location (MAYRA_DB_PATH)
- Audio device selection (MAYRA_INPUT_DEVICE, MAYRA_OUTPUT_DEVICE)
- Document download directory (MAYRA_DOCUMENTS_DIR)
- Log level (LOG_LEVEL)
"""

import os
from typing import Any, Dict


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = config_data.get(name)
    if not isinstance(block, dict):
        block = {}
    config_data[name] = block
    return block


def apply_storage_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply storage defaults.

    Environment variables:
    - MAYRA_DB_PATH: SQLite file holding preferences, memory and session state
    """
    storage_cfg = _section(config_data, 'storage')
    env_path = os.getenv('MAYRA_DB_PATH', '').strip()
    if env_path:
        storage_cfg['db_path'] = env_path
    storage_cfg.setdefault('db_path', 'data/mayra.db')


def apply_audio_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply audio device defaults.

    Environment variables:
    - MAYRA_INPUT_DEVICE: sounddevice input device name or index
    - MAYRA_OUTPUT_DEVICE: sounddevice output device name or index
    """
    audio_cfg = _section(config_data, 'audio')
    input_device = os.getenv('MAYRA_INPUT_DEVICE', '').strip()
    if input_device:
        audio_cfg['input_device'] = input_device
    output_device = os.getenv('MAYRA_OUTPUT_DEVICE', '').strip()
    if output_device:
        audio_cfg['output_device'] = output_device


def apply_tools_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply tool defaults.

    Environment variables:
    - MAYRA_DOCUMENTS_DIR: where create_document saves exported files
    """
    tools_cfg = _section(config_data, 'tools')
    documents_dir = os.getenv('MAYRA_DOCUMENTS_DIR', '').strip()
    if documents_dir:
        tools_cfg['documents_dir'] = documents_dir


def apply_logging_defaults(config_data: Dict[str, Any]) -> None:
    """LOG_LEVEL overrides logging.level from YAML."""
    logging_cfg = _section(config_data, 'logging')
    level = os.getenv('LOG_LEVEL', '').strip()
    if level:
        logging_cfg['level'] = level.lower()
    logging_cfg.setdefault('level', 'info')
