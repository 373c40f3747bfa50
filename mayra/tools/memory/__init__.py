"""
Memory tools package.

Contains tools for long-term memory items and owner preferences.
"""
