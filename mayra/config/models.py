"""
Configuration models for the Mayra live session engine.

Pydantic v2 models validate the merged YAML + environment configuration.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class LiveConfig(BaseModel):
    """Gemini Live API connection settings."""
    api_key: Optional[str] = None
    model: str = Field(default="gemini-2.5-flash-native-audio-preview-12-2025")
    endpoint: str = Field(
        default=(
            "wss://generativelanguage.googleapis.com/ws/"
            "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
        )
    )
    voice_name: str = Field(default="Kore")
    response_modalities: List[str] = Field(default_factory=lambda: ["AUDIO"])
    input_transcription: bool = Field(default=True)
    output_transcription: bool = Field(default=True)
    google_search: bool = Field(default=True)
    setup_timeout_sec: float = Field(default=5.0)
    max_message_bytes: int = Field(default=10 * 1024 * 1024)


class AudioConfig(BaseModel):
    input_sample_rate: int = Field(default=16000)
    output_sample_rate: int = Field(default=24000)
    capture_block_size: int = Field(default=4096)
    smoothing: float = Field(default=0.8)  # weight of the previous volume value
    input_device: Optional[str] = None
    output_device: Optional[str] = None


class StorageConfig(BaseModel):
    db_path: str = Field(default="data/mayra.db")


class ToolsConfig(BaseModel):
    shutdown_grace_sec: float = Field(default=3.5)
    documents_dir: str = Field(default="downloads")
    youtube_url: str = Field(default="https://www.youtube.com")
    timeout_sec: float = Field(default=10.0)


class NetworkConfig(BaseModel):
    probe_host: str = Field(default="8.8.8.8")
    probe_port: int = Field(default=53)
    interval_sec: float = Field(default=5.0)
    timeout_sec: float = Field(default=2.0)


class DisplayConfig(BaseModel):
    # Width in px used to pick the response-length class (mobile/tablet/desktop)
    screen_width: int = Field(default=1280)


class MetricsConfig(BaseModel):
    enabled: bool = Field(default=False)
    port: int = Field(default=9108)


class LoggingConfig(BaseModel):
    level: str = Field(default="info")  # debug|info|warning|error|critical


class AppConfig(BaseModel):
    live: LiveConfig = Field(default_factory=LiveConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
