"""
Session tools package.

Contains tools that change the live session: persona mode, transcript
clearing and power-down.
"""
