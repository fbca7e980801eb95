from __future__ import annotations

import os
import subprocess
import sys
import time
from pathlib import Path

import pytest

from segscribe import media_tools
from segscribe.exceptions import ProbeError, SegmentError
from segscribe.media_tools import FFmpegCutter, FFmpegInspector

FFMPEG_HEADER = """\
Input #0, mp3, from 'meeting.mp3':
  Metadata:
    encoder         : Lavf58.76.100
  Duration: {duration}, start: 0.025057, bitrate: 128 kb/s
  Stream #0:0: Audio: mp3, 44100 Hz, stereo, fltp, 128 kb/s
"""


class FakeRunner:
    def __init__(self, returncode: int = 0, stderr: str = "", error: Exception | None = None, on_run=None):
        self.returncode = returncode
        self.stderr = stderr
        self.error = error
        self.on_run = on_run
        self.calls: list[dict[str, object]] = []

    def __call__(self, stream, cmd="ffmpeg", timeout=None):
        self.calls.append({"args": stream.get_args(), "cmd": cmd, "timeout": timeout})
        if self.error is not None:
            raise self.error
        if self.on_run is not None:
            self.on_run()
        return self.returncode, self.stderr


def _source(tmp_path: Path) -> str:
    path = tmp_path / "meeting.mp3"
    path.write_bytes(b"fake-audio")
    return str(path)


def _has_pair(args: list[str], flag: str, value: str) -> bool:
    return any(a == flag and b == value for a, b in zip(args, args[1:]))


def test_probe_reads_duration_and_truncates_fraction(tmp_path, monkeypatch):
    runner = FakeRunner(stderr=FFMPEG_HEADER.format(duration="01:02:03.97,"))
    monkeypatch.setattr(media_tools, "run_ffmpeg", runner)

    duration = FFmpegInspector(ffmpeg_path="/opt/ffmpeg", timeout=30).probe_duration(_source(tmp_path))

    assert duration == 3723
    call = runner.calls[0]
    assert call["cmd"] == "/opt/ffmpeg"
    assert call["timeout"] == 30
    assert _has_pair(call["args"], "-f", "null")


def test_probe_parses_duration_even_when_ffmpeg_exits_non_zero(tmp_path, monkeypatch):
    runner = FakeRunner(returncode=1, stderr=FFMPEG_HEADER.format(duration="00:00:45.10,"))
    monkeypatch.setattr(media_tools, "run_ffmpeg", runner)

    assert FFmpegInspector().probe_duration(_source(tmp_path)) == 45


@pytest.mark.parametrize(
    "stderr",
    [
        "meeting.mp3: Invalid data found when processing input\n",
        FFMPEG_HEADER.format(duration="N/A,"),
        FFMPEG_HEADER.format(duration="02:03.50,"),
        FFMPEG_HEADER.format(duration="inf:00:00.00,"),
    ],
)
def test_probe_rejects_missing_or_malformed_duration(tmp_path, monkeypatch, stderr):
    monkeypatch.setattr(media_tools, "run_ffmpeg", FakeRunner(returncode=1, stderr=stderr))

    with pytest.raises(ProbeError):
        FFmpegInspector().probe_duration(_source(tmp_path))


def test_probe_reports_missing_tool(tmp_path, monkeypatch):
    monkeypatch.setattr(media_tools, "run_ffmpeg", FakeRunner(error=FileNotFoundError("ffmpeg")))

    with pytest.raises(ProbeError, match="Could not run"):
        FFmpegInspector().probe_duration(_source(tmp_path))


def test_probe_missing_source_does_not_start_ffmpeg(tmp_path, monkeypatch):
    runner = FakeRunner()
    monkeypatch.setattr(media_tools, "run_ffmpeg", runner)

    with pytest.raises(ProbeError, match="not found"):
        FFmpegInspector().probe_duration(str(tmp_path / "absent.mp3"))

    assert runner.calls == []


def test_cut_encodes_requested_range_at_fixed_bitrate(tmp_path, monkeypatch):
    output = tmp_path / "segments" / "meeting_part2.mp3"
    runner = FakeRunner(on_run=lambda: output.write_bytes(b"mp3"))
    monkeypatch.setattr(media_tools, "run_ffmpeg", runner)

    FFmpegCutter(bitrate_kbps=128).cut(_source(tmp_path), 30, 15, str(output))

    args = runner.calls[0]["args"]
    assert _has_pair(args, "-ss", "30")
    assert _has_pair(args, "-t", "15")
    assert _has_pair(args, "-acodec", "libmp3lame")
    assert _has_pair(args, "-b:a", "128k")
    assert "-y" in args
    assert str(output) in args


def test_cut_failure_removes_partial_output(tmp_path, monkeypatch):
    output = tmp_path / "meeting_part1.mp3"
    runner = FakeRunner(returncode=1, stderr="Conversion failed!", on_run=lambda: output.write_bytes(b"partial"))
    monkeypatch.setattr(media_tools, "run_ffmpeg", runner)

    with pytest.raises(SegmentError, match="status 1"):
        FFmpegCutter().cut(_source(tmp_path), 0, 10, str(output))

    assert not output.exists()


def test_cut_timeout_is_a_segment_error(tmp_path, monkeypatch):
    runner = FakeRunner(error=subprocess.TimeoutExpired(cmd="ffmpeg", timeout=5))
    monkeypatch.setattr(media_tools, "run_ffmpeg", runner)

    with pytest.raises(SegmentError, match="timed out"):
        FFmpegCutter(timeout=5).cut(_source(tmp_path), 0, 10, str(tmp_path / "out.mp3"))


def test_cut_into_unwritable_location_is_a_segment_error(tmp_path, monkeypatch):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file")
    runner = FakeRunner()
    monkeypatch.setattr(media_tools, "run_ffmpeg", runner)

    with pytest.raises(SegmentError):
        FFmpegCutter().cut(_source(tmp_path), 0, 10, str(blocker / "out.mp3"))

    assert runner.calls == []


@pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell script as the ffmpeg executable")
def test_cut_kills_ffmpeg_that_outlives_its_timeout(tmp_path):
    hanging_ffmpeg = tmp_path / "ffmpeg"
    # exec so the killed process is the one holding the pipes
    hanging_ffmpeg.write_text("#!/bin/sh\nexec sleep 30\n")
    os.chmod(hanging_ffmpeg, 0o755)
    output = tmp_path / "meeting_part1.mp3"
    cutter = FFmpegCutter(ffmpeg_path=str(hanging_ffmpeg), timeout=1)

    started = time.monotonic()
    with pytest.raises(SegmentError, match="timed out"):
        cutter.cut(_source(tmp_path), 0, 10, str(output))

    assert time.monotonic() - started < 10
    assert not output.exists()
