"""
Tool calling system for the Mayra live agent.

Every action the remote agent can request (device status, persona and
power changes, long-term memory, media, document export) is a Tool
registered by name in the ToolRegistry.
"""

__version__ = "1.0.0"
