"""
Tool execution context - provides access to engine resources during tool execution.
"""

import asyncio
from dataclasses import dataclass
from functools import partial
from typing import Optional, Any, Callable
import logging

logger = logging.getLogger(__name__)


@dataclass
class ToolExecutionContext:
    """
    Context provided to tools during execution.

    Carries the persistent stores, the session controller (for mode, gain,
    transcript and power changes), the battery snapshot source and config.
    """

    # Live session information
    session_id: Optional[str] = None

    # Engine access (injected by the session controller)
    stores: Any = None        # PersistentStores instance
    controller: Any = None    # SessionController instance
    battery: Any = None       # BatteryMonitor instance
    config: Any = None        # AppConfig or plain dict

    def require(self, name: str) -> Any:
        """Return an injected resource, raising if it is missing."""
        value = getattr(self, name, None)
        if value is None:
            raise RuntimeError(f"{name} not available in tool context")
        return value

    async def run_blocking(self, func: Callable, *args, **kwargs) -> Any:
        """Run blocking I/O (storage, file export, browser) off the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    def get_config_value(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Args:
            key: Config key (supports dot notation, e.g., "tools.shutdown_grace_sec")
            default: Default value if key not found

        Returns:
            Config value or default
        """
        if self.config is None:
            return default

        value = self.config
        for k in key.split('.'):
            if isinstance(value, dict):
                if k not in value:
                    return default
                value = value[k]
            elif hasattr(value, k):
                value = getattr(value, k)
            else:
                return default

        return value
