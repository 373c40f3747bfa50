"""
Security-critical configuration injection.

SECURITY POLICY:
- The Gemini API key MUST NEVER be in YAML files
- The key comes from environment variables only
- This separation prevents accidental credential exposure in version control
"""

import os
from typing import Any, Dict, Optional


# Checked in order; the first non-empty value wins
API_KEY_ENV_VARS = ("GOOGLE_API_KEY", "GEMINI_API_KEY", "API_KEY")


def _is_nonempty_string(val: Any) -> bool:
    """Check if value is a string with non-whitespace content."""
    return isinstance(val, str) and val.strip() != ""


def expand_string_tokens(value: str) -> str:
    """
    Expand environment variable tokens in a string.

    Supports ${VAR} and $VAR syntax. Undefined variables are left unchanged.
    """
    return os.path.expandvars(value or "")


def resolve_api_key() -> Optional[str]:
    """Return the first non-empty API key found in the environment, or None."""
    for name in API_KEY_ENV_VARS:
        value = os.getenv(name)
        if _is_nonempty_string(value):
            return value.strip()
    return None


def inject_live_api_key(config_data: Dict[str, Any]) -> None:
    """
    Inject the Gemini Live API key from environment variables ONLY.

    Any api_key present in YAML is overwritten (with None when the
    environment has no key).

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    live_block = config_data.get('live')
    if not isinstance(live_block, dict):
        live_block = {}
    live_block['api_key'] = resolve_api_key()
    config_data['live'] = live_block
