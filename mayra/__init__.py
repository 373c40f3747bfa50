"""
Mayra - voice-first conversational assistant.

The live session engine drives a bidirectional audio conversation with the
Gemini Live API: microphone capture, gapless speech playback, incremental
transcripts, agent tool calls and persisted conversation state.
"""

__version__ = "1.0.0"
