"""
Per-project filesystem layout and readiness checks.
"""

import os
import re
from dataclasses import dataclass

VIDEO_EXT_RE = re.compile(r"\.(mp4|mkv|webm|avi|mov)$", re.IGNORECASE)


@dataclass
class ProjectLayout:
    """Directory convention of a dubbing project."""

    root: str

    @property
    def video_dir(self) -> str:
        return os.path.join(self.root, "original", "video")

    @property
    def transcript_dir(self) -> str:
        return os.path.join(self.root, "transcript")

    @property
    def audio_dir(self) -> str:
        return os.path.join(self.root, "audio_gene")

    @property
    def temp_dir(self) -> str:
        return os.path.join(self.root, "temp_final")

    @property
    def final_dir(self) -> str:
        return os.path.join(self.root, "final")

    def final_output(self, video_id: str) -> str:
        return os.path.join(self.final_dir, f"{video_id}_final.mp4")


def _first_match(directory: str, predicate) -> str | None:
    if not os.path.isdir(directory):
        return None
    for name in sorted(os.listdir(directory)):
        if predicate(name):
            return os.path.join(directory, name)
    return None


def find_original_video(layout: ProjectLayout) -> str | None:
    return _first_match(layout.video_dir, lambda n: bool(VIDEO_EXT_RE.search(n)))


def find_original_srt(layout: ProjectLayout) -> str | None:
    return _first_match(layout.transcript_dir, lambda n: n.lower().endswith(".srt"))


@dataclass
class ReadyState:
    ready: bool
    missing: str | None = None
    existing_final: str | None = None


def check_ready(layout: ProjectLayout, video_id: str, audio_ext: str = ".mp3") -> ReadyState:
    """Check that the video, subtitles and generated audio all exist."""
    if find_original_video(layout) is None:
        return ReadyState(False, "Original video not found. Download the video first.")
    if find_original_srt(layout) is None:
        return ReadyState(False, "Original subtitles not found. Generate subtitles first.")
    if _first_match(layout.audio_dir, lambda n: n.lower().endswith(audio_ext)) is None:
        return ReadyState(False, "No generated audio found. Generate audio first.")
    final = layout.final_output(video_id)
    return ReadyState(True, existing_final=final if os.path.isfile(final) else None)
