"""Provider adapters translating tool definitions and tool calls."""

from mayra.tools.adapters.google import GoogleToolAdapter

__all__ = ["GoogleToolAdapter"]
