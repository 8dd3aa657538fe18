"""
Run configuration for the assembly pipeline.
"""

import os
from dataclasses import dataclass

FAILURE_MODES = ("drop", "original")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if not raw:
        return None
    return float(raw)


@dataclass
class AssemblyConfig:
    """Tunables shared by every worker of a run."""

    ffmpeg_path: str = "ffmpeg"
    handbrake_path: str = "HandBrakeCLI"
    concurrency: int = 3  # hardware encoders sustain few concurrent sessions
    hwaccel: bool = False
    gap_tolerance: float = 0.05
    max_speedup: float = 1.3
    audio_ext: str = ".mp3"
    quality: int = 22
    audio_bitrate_k: int = 192
    sample_rate: int = 44100
    encode_timeout: float | None = None
    retries: int = 0
    failure_mode: str = "drop"
    rerender: bool = True
    show_progress: bool = False

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.max_speedup < 1.0:
            raise ValueError("max_speedup must be >= 1.0")
        if self.failure_mode not in FAILURE_MODES:
            raise ValueError(f"failure_mode must be one of {FAILURE_MODES}")

    @classmethod
    def from_env(cls) -> "AssemblyConfig":
        """Build a config from DUB_* environment variables."""
        return cls(
            ffmpeg_path=os.getenv("DUB_FFMPEG", "ffmpeg"),
            handbrake_path=os.getenv("DUB_HANDBRAKE", "HandBrakeCLI"),
            concurrency=int(os.getenv("DUB_CONCURRENCY", "3")),
            hwaccel=_env_bool("DUB_HWACCEL", False),
            encode_timeout=_env_float("DUB_ENCODE_TIMEOUT"),
            retries=int(os.getenv("DUB_RETRIES", "0")),
            failure_mode=os.getenv("DUB_FAILURE_MODE", "drop"),
            rerender=_env_bool("DUB_RERENDER", True),
        )

    def video_args(self) -> list[str]:
        """Video codec arguments used for every segment."""
        if self.hwaccel:
            return ["-c:v", "h264_nvenc", "-preset", "fast", "-cq", str(self.quality)]
        return ["-c:v", "libx264", "-preset", "fast", "-crf", str(self.quality)]

    def audio_args(self) -> list[str]:
        return [
            "-c:a",
            "aac",
            "-b:a",
            f"{self.audio_bitrate_k}k",
            "-ar",
            str(self.sample_rate),
            "-ac",
            "2",
        ]
