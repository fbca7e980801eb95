"""Probes and cuts audio files with ffmpeg."""

import ffmpeg
import os
import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from .exceptions import FileSystemError, ProbeError, SegmentError
from .utils import ensure_dir_exists, find_duration_line, parse_duration_line

logger = logging.getLogger(__name__)

OUTPUT_EXTENSION = "mp3"
OUTPUT_CODEC = "libmp3lame"
DEFAULT_BITRATE_KBPS = 128

def run_ffmpeg(stream, cmd: str = "ffmpeg", timeout: Optional[float] = None) -> Tuple[int, str]:
    """
    Runs a compiled ffmpeg stream with its output kept off the console.

    Args:
        stream: An ffmpeg-python output stream.
        cmd: The ffmpeg executable.
        timeout: Seconds to wait before the process is killed. None waits forever.

    Returns:
        ``(returncode, stderr_text)``.

    Raises:
        OSError: If the executable cannot be started.
        subprocess.TimeoutExpired: If the process outlives ``timeout``.
    """
    process = stream.global_args('-nostdin').run_async(cmd=cmd, pipe_stdout=True, pipe_stderr=True)
    try:
        _, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        process.kill()
        process.communicate()
        raise
    return process.returncode, stderr.decode('utf-8', errors='replace') if stderr else ""

def _stderr_tail(stderr: str, lines: int = 5) -> str:
    return " | ".join(stderr.strip().splitlines()[-lines:]) or "No stderr output"

class MediaInspector(ABC):
    """Reports the duration of an audio source."""

    @abstractmethod
    def probe_duration(self, source_path: str) -> int:
        """
        Returns the total duration of the source in whole seconds.

        Raises:
            ProbeError: If the duration cannot be determined.
        """
        pass

class MediaCutter(ABC):
    """Writes a time range of an audio source to its own file."""

    @abstractmethod
    def cut(self, source_path: str, start_secs: int, duration_secs: int, output_path: str) -> None:
        """
        Writes ``[start_secs, start_secs + duration_secs)`` of the source to ``output_path``.

        An existing file at ``output_path`` is overwritten.

        Raises:
            SegmentError: If the segment cannot be written.
        """
        pass

class FFmpegInspector(MediaInspector):
    """Reads the duration ffmpeg prints while decoding a source to the null muxer."""

    def __init__(self, ffmpeg_path: Optional[str] = None, timeout: Optional[float] = None):
        """
        Args:
            ffmpeg_path: Optional path to the ffmpeg executable.
                         If None, assumes ffmpeg is in the system PATH.
            timeout: Seconds to allow the probe to run. None waits forever.
        """
        self.ffmpeg_cmd = ffmpeg_path or 'ffmpeg'
        self.timeout = timeout

    def probe_duration(self, source_path: str) -> int:
        logger.info(f"Probing duration of: {source_path}")
        if not os.path.isfile(source_path):
            raise ProbeError(f"Input audio file not found: {source_path}")

        stream = ffmpeg.input(source_path).output('-', format='null')
        try:
            returncode, stderr = run_ffmpeg(stream, cmd=self.ffmpeg_cmd, timeout=self.timeout)
        except OSError as e:
            logger.error(f"Could not start {self.ffmpeg_cmd}: {e}")
            raise ProbeError(f"Could not run {self.ffmpeg_cmd}: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise ProbeError(f"Probing {source_path} timed out after {self.timeout}s") from e

        # A failed decode still prints the container header, so parse before judging the exit status.
        duration_line = find_duration_line(stderr)
        if duration_line is None:
            logger.error(f"No duration reported for {source_path} (exit status {returncode}): {_stderr_tail(stderr)}")
            raise ProbeError(f"Duration not found in ffmpeg output for {source_path}")
        if returncode != 0:
            logger.warning(f"ffmpeg exited with status {returncode} while probing {source_path}; using reported duration")

        try:
            duration = parse_duration_line(duration_line)
        except ValueError as e:
            raise ProbeError(f"Unparseable duration for {source_path}: {e}") from e

        logger.info(f"Duration of {source_path}: {duration}s")
        return duration

class FFmpegCutter(MediaCutter):
    """Re-encodes time ranges of a source to constant bitrate mp3."""

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        bitrate_kbps: int = DEFAULT_BITRATE_KBPS,
        timeout: Optional[float] = None
    ):
        """
        Args:
            ffmpeg_path: Optional path to the ffmpeg executable.
            bitrate_kbps: Encode bitrate shared by every segment of a run.
            timeout: Seconds to allow a single cut. None waits forever.
        """
        self.ffmpeg_cmd = ffmpeg_path or 'ffmpeg'
        self.bitrate_kbps = bitrate_kbps
        self.timeout = timeout

    def cut(self, source_path: str, start_secs: int, duration_secs: int, output_path: str) -> None:
        logger.debug(f"Cutting {source_path} [{start_secs}s, +{duration_secs}s) -> {output_path}")
        try:
            ensure_dir_exists(os.path.dirname(output_path) or '.')
        except FileSystemError as e:
            raise SegmentError(f"Output directory for {output_path} is not usable: {e}") from e

        stream = (
            ffmpeg
            .input(source_path, ss=start_secs)
            .output(output_path, t=duration_secs, vn=None, acodec=OUTPUT_CODEC,
                    audio_bitrate=f"{self.bitrate_kbps}k", format=OUTPUT_EXTENSION)
            .overwrite_output()
        )
        try:
            returncode, stderr = run_ffmpeg(stream, cmd=self.ffmpeg_cmd, timeout=self.timeout)
        except OSError as e:
            raise SegmentError(f"Could not run {self.ffmpeg_cmd}: {e}") from e
        except subprocess.TimeoutExpired as e:
            self._remove_partial(output_path)
            raise SegmentError(f"Cutting {output_path} timed out after {self.timeout}s") from e

        if returncode != 0:
            logger.error(f"ffmpeg exited with status {returncode} for {output_path}: {_stderr_tail(stderr)}")
            self._remove_partial(output_path)
            raise SegmentError(f"ffmpeg failed with status {returncode} for {output_path}")
        if not os.path.isfile(output_path):
            raise SegmentError(f"ffmpeg reported success but wrote no file at {output_path}")

    @staticmethod
    def _remove_partial(output_path: str) -> None:
        if os.path.exists(output_path):
            try:
                os.remove(output_path)
            except OSError:
                logger.warning(f"Could not clean up partially written segment: {output_path}")
