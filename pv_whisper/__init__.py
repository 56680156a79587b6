"""
pv-whisper: Whisper channel for proximity voice chat

A secondary, short-range voice channel layered on top of a proximity voice
channel. Its radius tracks the live proximity radius, and it exists only while
the proximity channel is registered with the host voice server.
"""

__version__ = "0.1.0"
