"""
Dub Assembly - build a dubbed video from a subtitle track and per-line audio.

A pipeline for:
- Parsing SRT subtitle tracks into timed entries
- Partitioning the source timeline into gap and dubbed segments
- Reconciling each segment's video and audio durations (pad, speed up, slow down)
- Encoding segments with ffmpeg under bounded concurrency
- Joining the clips losslessly and re-rendering at constant frame rate
"""

__version__ = "0.1.0"
