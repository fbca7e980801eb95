"""Orchestrates splitting a long recording and transcribing the pieces concurrently."""

import logging
import os
import shutil
import threading
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, List, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
    wait_random,
)

from .media_tools import (
    DEFAULT_BITRATE_KBPS,
    OUTPUT_EXTENSION,
    FFmpegCutter,
    FFmpegInspector,
    MediaCutter,
    MediaInspector,
)
from .transcriber import OpenAITranscriber, Transcriber
from .models import Segment, SegmentPlan, SegmentResult, SegmentStatus, Transcript
from .exceptions import (
    ConfigurationError,
    PipelineCancelledError,
    ProbeError,
    SegmentError,
    TranscriptionError,
)
from .utils import ensure_dir_exists, format_clock

logger = logging.getLogger(__name__)

# How often the collector wakes up to look for a cancellation request.
CANCEL_POLL_SECS = 0.5
MAX_RETRY_BACKOFF_SECS = 12.0

def segment_duration_for_size(max_segment_bytes: int, bitrate_bps: int) -> int:
    """
    Converts a target segment size into whole seconds of audio at a fixed bitrate.

    Args:
        max_segment_bytes: Largest encoded segment the caller accepts.
        bitrate_bps: Encode bitrate in bits per second.

    Returns:
        The segment duration in seconds, at least 1.

    Raises:
        ConfigurationError: If either argument is not positive, or the size
                            holds less than one second of encoded audio.
    """
    if max_segment_bytes <= 0:
        raise ConfigurationError(f"Maximum segment size must be positive, got {max_segment_bytes}")
    bytes_per_sec = bitrate_bps // 8
    if bytes_per_sec <= 0:
        raise ConfigurationError(f"Bitrate must be at least 8 bps, got {bitrate_bps}")
    duration = max_segment_bytes // bytes_per_sec
    if duration < 1:
        raise ConfigurationError(
            f"Maximum segment size {max_segment_bytes} bytes is less than one second "
            f"of audio at {bitrate_bps} bps ({bytes_per_sec} bytes)"
        )
    return duration

def plan_segments(total_duration_secs: int, segment_duration_secs: int) -> SegmentPlan:
    """Returns the plan covering ``total_duration_secs`` with segments of the given length."""
    if segment_duration_secs <= 0:
        raise ConfigurationError(f"Segment duration must be positive, got {segment_duration_secs}")
    if total_duration_secs < 0:
        raise ConfigurationError(f"Total duration cannot be negative, got {total_duration_secs}")
    count = -(-total_duration_secs // segment_duration_secs)
    return SegmentPlan(
        total_duration_secs=total_duration_secs,
        segment_duration_secs=segment_duration_secs,
        segment_count=count,
    )

class SegmentPipeline:
    """
    Splits a source into fixed-duration segments and transcribes each one.

    Planning is synchronous and fails fast: a bad size or an unreadable
    duration raises before any work is scheduled. Execution fails soft: every
    segment is cut and transcribed on a bounded worker pool, a failing segment
    is recorded in its own result and never affects its siblings.
    """

    def __init__(
        self,
        inspector: MediaInspector,
        cutter: MediaCutter,
        transcriber: Transcriber,
        work_dir: str,
        bitrate_kbps: int = DEFAULT_BITRATE_KBPS,
        max_workers: int = 4,
        transcription_retries: int = 0,
        keep_segments: bool = False,
    ):
        """
        Initializes the SegmentPipeline.

        Args:
            inspector: Reports the duration of the source.
            cutter: Writes each segment file. Must encode at ``bitrate_kbps``.
            transcriber: Turns a segment file into text. Shared by all workers.
            work_dir: Parent directory for the per-run segment directories.
            bitrate_kbps: Encode bitrate used to turn a size limit into a duration.
            max_workers: Upper bound on segments processed at once.
            transcription_retries: Extra attempts for a segment whose transcription fails.
            keep_segments: Leave segment files on disk after the run.
        """
        if max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {max_workers}")
        if transcription_retries < 0:
            raise ConfigurationError(f"transcription_retries cannot be negative, got {transcription_retries}")
        self.inspector = inspector
        self.cutter = cutter
        self.transcriber = transcriber
        self.work_dir = work_dir
        self.bitrate_kbps = bitrate_kbps
        self.max_workers = max_workers
        self.transcription_retries = transcription_retries
        self.keep_segments = keep_segments

    @classmethod
    def from_config(cls, config: dict, api_key: str) -> "SegmentPipeline":
        """Builds a pipeline backed by ffmpeg and the remote transcription endpoint."""
        timeout = config.get('segment_timeout_secs')
        return cls(
            inspector=FFmpegInspector(ffmpeg_path=config.get('ffmpeg_path'), timeout=timeout),
            cutter=FFmpegCutter(
                ffmpeg_path=config.get('ffmpeg_path'),
                bitrate_kbps=config['bitrate_kbps'],
                timeout=timeout,
            ),
            transcriber=OpenAITranscriber(
                api_key=api_key,
                model=config['transcription_model'],
                endpoint=config['transcription_url'],
                timeout=timeout,
                pool_size=config['max_workers'],
            ),
            work_dir=config['temp_dir'],
            bitrate_kbps=config['bitrate_kbps'],
            max_workers=config['max_workers'],
            transcription_retries=config.get('transcription_retries', 0),
            keep_segments=bool(config.get('keep_segments', False)),
        )

    def plan(self, source_path: str, max_segment_bytes: int) -> SegmentPlan:
        """
        Computes the segment plan for a source.

        Raises:
            ConfigurationError: If ``max_segment_bytes`` is unusable at this bitrate.
            ProbeError: If the source duration cannot be determined.
        """
        segment_duration = segment_duration_for_size(max_segment_bytes, self.bitrate_kbps * 1000)
        try:
            total_duration = self.inspector.probe_duration(source_path)
        except ProbeError as e:
            logger.error(f"Cannot plan segments for {source_path}: {e}")
            raise
        plan = plan_segments(total_duration, segment_duration)
        logger.info(
            f"Planned {plan.segment_count} segment(s) of {segment_duration}s "
            f"for {format_clock(total_duration)} of audio in {source_path}"
        )
        return plan

    def run(
        self,
        source_path: str,
        max_segment_bytes: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> Transcript:
        """
        Transcribes ``source_path`` segment by segment.

        Args:
            source_path: Audio file to transcribe.
            max_segment_bytes: Upper bound on the encoded size of each segment.
            cancel_event: Set by the caller to abandon the run. Queued segments
                          are not started and running ones stop at their next step.

        Returns:
            A Transcript holding one result per segment, in chronological order.

        Raises:
            ConfigurationError: If ``max_segment_bytes`` is unusable.
            ProbeError: If the source duration cannot be determined.
            FileSystemError: If the run directory cannot be created.
            PipelineCancelledError: If ``cancel_event`` was set during the run.
        """
        plan = self.plan(source_path, max_segment_bytes)
        if plan.segment_count == 0:
            logger.info(f"{source_path} has zero duration; nothing to transcribe")
            return Transcript(source_path=source_path)

        base_name = os.path.splitext(os.path.basename(source_path))[0]
        run_dir = os.path.join(self.work_dir, f"{base_name}_{uuid.uuid4().hex[:8]}")
        ensure_dir_exists(run_dir)

        slots: List[Optional[SegmentResult]] = [None] * plan.segment_count
        start_time = time.time()
        try:
            with ThreadPoolExecutor(
                max_workers=min(self.max_workers, plan.segment_count),
                thread_name_prefix="segment",
            ) as executor:
                futures: Dict[Future, int] = {}
                for index, start_secs, duration_secs in plan.segments():
                    segment = Segment(
                        index=index,
                        start_secs=start_secs,
                        duration_secs=duration_secs,
                        file_path=os.path.join(run_dir, f"{base_name}_part{index + 1}.{OUTPUT_EXTENSION}"),
                    )
                    future = executor.submit(
                        self._process_segment, source_path, segment, plan.segment_count, cancel_event
                    )
                    futures[future] = index
                self._collect(futures, slots, cancel_event)
        finally:
            if not self.keep_segments:
                self._remove_run_dir(run_dir)

        # Every future is terminal here, so every slot has been written.
        transcript = Transcript(source_path=source_path, results=list(slots))
        elapsed = time.time() - start_time

        if cancel_event is not None and cancel_event.is_set():
            finished = sum(1 for result in transcript.results if result.ok)
            logger.warning(f"Run for {source_path} cancelled after {finished}/{plan.segment_count} segment(s)")
            raise PipelineCancelledError(
                f"Transcription of {source_path} was cancelled ({finished}/{plan.segment_count} segments done)"
            )

        if transcript.is_complete:
            logger.info(f"Transcribed all {plan.segment_count} segment(s) of {source_path} in {elapsed:.2f}s")
        else:
            logger.warning(
                f"Transcribed {plan.segment_count - transcript.failure_count}/{plan.segment_count} "
                f"segment(s) of {source_path} in {elapsed:.2f}s; failed: "
                + ", ".join(str(result.index + 1) for result in transcript.failed)
            )
        return transcript

    def _collect(
        self,
        futures: Dict[Future, int],
        slots: List[Optional[SegmentResult]],
        cancel_event: Optional[threading.Event],
    ) -> None:
        """Waits for every unit and stores each result in the slot of its segment index."""
        pending = set(futures)
        cancelling = False
        while pending:
            done, pending = wait(pending, timeout=CANCEL_POLL_SECS, return_when=FIRST_COMPLETED)
            for future in done:
                index = futures[future]
                slots[index] = self._result_of(future, index)

            if not cancelling and cancel_event is not None and cancel_event.is_set():
                cancelling = True
                withdrawn = sum(1 for future in pending if future.cancel())
                logger.warning(f"Cancellation requested; withdrew {withdrawn} queued segment(s)")

    @staticmethod
    def _result_of(future: Future, index: int) -> SegmentResult:
        if future.cancelled():
            return SegmentResult(index, SegmentStatus.CANCELLED, error="cancelled before start")
        try:
            return future.result()
        except Exception as e:
            logger.error(f"Segment {index + 1} failed unexpectedly: {e}", exc_info=True)
            return SegmentResult(index, SegmentStatus.SEGMENT_ERROR, error=f"unexpected error: {e}")

    def _process_segment(
        self,
        source_path: str,
        segment: Segment,
        segment_count: int,
        cancel_event: Optional[threading.Event],
    ) -> SegmentResult:
        """Cuts one segment and transcribes it. Runs on a worker thread."""
        index = segment.index
        output_path = segment.file_path
        label = f"{index + 1}/{segment_count}"
        if _is_set(cancel_event):
            return SegmentResult(index, SegmentStatus.CANCELLED, error="cancelled before cutting")

        try:
            self.cutter.cut(source_path, segment.start_secs, segment.duration_secs, output_path)
        except SegmentError as e:
            logger.warning(f"Segment {label} ({format_clock(segment.start_secs)}) could not be cut: {e}")
            return SegmentResult(index, SegmentStatus.SEGMENT_ERROR, error=str(e))

        try:
            if _is_set(cancel_event):
                return SegmentResult(index, SegmentStatus.CANCELLED, error="cancelled before transcription")
            try:
                text = self._transcribe_with_retries(output_path, label, cancel_event)
            except TranscriptionError as e:
                logger.warning(f"Segment {label} ({output_path}) could not be transcribed: {e.reason}")
                return SegmentResult(index, SegmentStatus.TRANSCRIPTION_ERROR, error=e.reason)
            logger.debug(f"Segment {label} transcribed ({len(text)} chars)")
            return SegmentResult(index, SegmentStatus.SUCCESS, text=text)
        finally:
            if not self.keep_segments:
                _discard(output_path)

    def _transcribe_with_retries(
        self,
        segment_path: str,
        label: str,
        cancel_event: Optional[threading.Event],
    ) -> str:
        stop = stop_after_attempt(self.transcription_retries + 1)
        if cancel_event is not None:
            stop = stop | stop_when_event_set(cancel_event)

        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            logger.info(
                f"Retry {retry_state.attempt_number}/{self.transcription_retries} for segment {label} "
                f"in {retry_state.next_action.sleep:.1f}s: {getattr(error, 'reason', error)}"
            )

        retrying = Retrying(
            retry=retry_if_exception_type(TranscriptionError),
            stop=stop,
            wait=wait_exponential(multiplier=1, max=MAX_RETRY_BACKOFF_SECS) + wait_random(0.05, 0.4),
            before_sleep=log_retry,
            reraise=True,
        )
        return retrying(self.transcriber.transcribe, segment_path)

    @staticmethod
    def _remove_run_dir(run_dir: str) -> None:
        try:
            shutil.rmtree(run_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove segment directory {run_dir}: {e}")

def _is_set(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()

def _discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove segment file {path}: {e}")

def split_and_transcribe(
    source_path: str,
    max_segment_bytes: int,
    credential: str,
    *,
    work_dir: str = "split_audio",
    ffmpeg_path: Optional[str] = None,
    bitrate_kbps: int = DEFAULT_BITRATE_KBPS,
    max_workers: int = 4,
    segment_timeout_secs: Optional[float] = 600,
    cancel_event: Optional[threading.Event] = None,
) -> List[str]:
    """
    Transcribes an audio file with ffmpeg segmentation and the OpenAI endpoint.

    Failed segments are left out of the returned list; use
    ``SegmentPipeline.run`` directly to see which segments failed and why.

    Returns:
        The text of each successfully transcribed segment, in chronological order.
    """
    pipeline = SegmentPipeline(
        inspector=FFmpegInspector(ffmpeg_path=ffmpeg_path, timeout=segment_timeout_secs),
        cutter=FFmpegCutter(ffmpeg_path=ffmpeg_path, bitrate_kbps=bitrate_kbps, timeout=segment_timeout_secs),
        transcriber=OpenAITranscriber(api_key=credential, timeout=segment_timeout_secs, pool_size=max_workers),
        work_dir=work_dir,
        bitrate_kbps=bitrate_kbps,
        max_workers=max_workers,
    )
    return pipeline.run(source_path, max_segment_bytes, cancel_event=cancel_event).texts()
