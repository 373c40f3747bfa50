"""
Device tools package.

Contains tools that read or adjust the local device: battery, clock and
output volume.
"""
