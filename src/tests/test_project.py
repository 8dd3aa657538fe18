"""
Tests for project layout discovery, configuration and CLI wiring.
"""

import os

import pytest

from src.dubassembly.cli import build_config, parse_args
from src.dubassembly.config import AssemblyConfig
from src.dubassembly.project import ProjectLayout, check_ready, find_original_srt, find_original_video


def make_project(root, video=True, srt=True, audio=True):
    root.mkdir(parents=True, exist_ok=True)
    layout = ProjectLayout(str(root))
    if video:
        (root / "original" / "video").mkdir(parents=True)
        (root / "original" / "video" / "notes.txt").write_text("x")
        (root / "original" / "video" / "clip.MKV").write_bytes(b"v")
    if srt:
        (root / "transcript").mkdir()
        (root / "transcript" / "clip.srt").write_text("1\n00:00:00,000 --> 00:00:01,000\nhi\n")
    if audio:
        (root / "audio_gene").mkdir()
        (root / "audio_gene" / "0001.mp3").write_bytes(b"a")
    return layout


def test_find_inputs(tmp_path):
    layout = make_project(tmp_path)

    assert find_original_video(layout).endswith("clip.MKV")
    assert find_original_srt(layout).endswith("clip.srt")
    assert layout.final_output("abc") == os.path.join(str(tmp_path), "final", "abc_final.mp4")


def test_check_ready_reports_first_missing_input(tmp_path):
    assert "video" in check_ready(make_project(tmp_path / "a", video=False), "x").missing
    assert "subtitles" in check_ready(make_project(tmp_path / "b", srt=False), "x").missing
    assert "audio" in check_ready(make_project(tmp_path / "c", audio=False), "x").missing


def test_check_ready_existing_final(tmp_path):
    layout = make_project(tmp_path)
    state = check_ready(layout, "vid")
    assert state.ready and state.existing_final is None

    (tmp_path / "final").mkdir()
    (tmp_path / "final" / "vid_final.mp4").write_bytes(b"f")
    assert check_ready(layout, "vid").existing_final == layout.final_output("vid")


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("DUB_CONCURRENCY", "5")
    monkeypatch.setenv("DUB_HWACCEL", "yes")
    monkeypatch.setenv("DUB_ENCODE_TIMEOUT", "90")
    monkeypatch.setenv("DUB_FAILURE_MODE", "original")
    monkeypatch.setenv("DUB_RERENDER", "0")

    config = AssemblyConfig.from_env()
    assert config.concurrency == 5
    assert config.hwaccel is True
    assert config.encode_timeout == 90.0
    assert config.failure_mode == "original"
    assert config.rerender is False


def test_config_validation():
    with pytest.raises(ValueError):
        AssemblyConfig(concurrency=0)
    with pytest.raises(ValueError):
        AssemblyConfig(failure_mode="skip")


def test_cli_flags_override_env(monkeypatch):
    monkeypatch.setenv("DUB_CONCURRENCY", "5")
    monkeypatch.delenv("DUB_HWACCEL", raising=False)
    args = parse_args(["--project", "p", "--concurrency", "2", "--no-rerender", "--retries", "1"])

    config = build_config(args)
    assert config.concurrency == 2
    assert config.rerender is False
    assert config.retries == 1
    assert config.hwaccel is False
