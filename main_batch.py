#!/usr/bin/env python3
"""
segscribe Batch Processing Entry Point

Transcribes every audio file in a directory, smallest first, and stores
one transcript per file.
"""

import argparse
import logging
import os
import sys
import time
from typing import List, Tuple

from tqdm import tqdm

from segscribe.config_loader import ConfigLoader, resolve_api_key
from segscribe.log_setup import setup_logging
from segscribe.pipeline import SegmentPipeline
from segscribe.storage import TranscriptStore
from segscribe.exceptions import SegScribeError, ConfigurationError

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = (".mp3", ".wav", ".m4a", ".flac", ".ogg", ".mp4")

def find_and_sort_audio(input_dir: str) -> List[Tuple[str, int]]:
    """
    Finds all audio files in the input directory and sorts them by size.

    Args:
        input_dir: The directory to search for audio files.

    Returns:
        A list of ``(filepath, filesize)`` tuples, smallest file first.

    Raises:
        FileNotFoundError: If the input directory doesn't exist.
        ValueError: If the input path is not a directory.
    """
    if not os.path.exists(input_dir):
        raise FileNotFoundError(f"Input directory not found: {input_dir}")
    if not os.path.isdir(input_dir):
        raise ValueError(f"Input path is not a directory: {input_dir}")

    files = []
    logger.info(f"Scanning directory for audio files: {input_dir}")
    for filename in os.listdir(input_dir):
        if filename.lower().endswith(AUDIO_EXTENSIONS):
            filepath = os.path.join(input_dir, filename)
            try:
                if os.path.isfile(filepath):
                    files.append((filepath, os.path.getsize(filepath)))
            except OSError as e:
                logger.warning(f"Could not access file {filepath}: {e}. Skipping.")

    files.sort(key=lambda item: item[1])
    logger.info(f"Found {len(files)} audio files. Sorted by size (smallest first).")
    return files

def run_batch_processing():
    """Parses arguments, sets up, and transcribes every audio file in a directory."""
    parser = argparse.ArgumentParser(
        description="segscribe batch: transcribe all audio files in a directory.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument(
        "-i", "--input-dir",
        required=True,
        help="Directory containing the input audio files."
    )
    parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to the configuration YAML file."
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level for console and file output."
    )
    args = parser.parse_args()

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    setup_logging(log_level=log_level, log_dir='logs', log_file='segscribe_batch_init.log')

    try:
        config = ConfigLoader().load_config(args.config)
    except (ConfigurationError, FileNotFoundError) as e:
        logger.critical(f"Failed to load configuration: {e}")
        sys.exit(1)

    setup_logging(log_level=log_level, log_dir=config['log_dir'], log_file='segscribe_batch.log')

    try:
        audio_files = [path for path, _ in find_and_sort_audio(args.input_dir)]
    except (FileNotFoundError, ValueError) as e:
        logger.critical(f"Input directory error: {e}")
        sys.exit(1)
    if not audio_files:
        logger.warning(f"No audio files found in {args.input_dir}. Exiting.")
        sys.exit(0)

    # One pipeline for the whole batch so the HTTP connection pool is reused
    try:
        pipeline = SegmentPipeline.from_config(config, resolve_api_key(config))
    except SegScribeError as e:
        logger.critical(f"Failed to initialize the pipeline: {e}")
        sys.exit(1)
    store = TranscriptStore(config['data_dir'])

    total_files = len(audio_files)
    files_processed = 0
    files_failed = 0
    batch_start_time = time.time()
    logger.info(f"--- Starting batch transcription of {total_files} files ---")

    with tqdm(total=total_files, unit="file", desc="Starting Batch") as pbar:
        for audio_path in audio_files:
            audio_filename = os.path.basename(audio_path)
            pbar.set_description(f"Processing: {audio_filename[:30]}...")
            try:
                transcript = pipeline.run(audio_path, config['max_segment_bytes'])
                transcript_id = store.save_transcript(
                    transcript.render(separator=" ", gap_marker=config.get('gap_marker'))
                )
                if transcript.is_complete:
                    logger.info(f"{audio_filename} -> {transcript_id}")
                else:
                    logger.warning(
                        f"{audio_filename} -> {transcript_id} "
                        f"({transcript.failure_count} segment(s) missing)"
                    )
                files_processed += 1
            except SegScribeError as e:
                logger.error(f"Transcription failed for '{audio_filename}': {e}")
                files_failed += 1
            except KeyboardInterrupt:
                logger.warning("Batch process interrupted by user (Ctrl+C). Exiting.")
                sys.exit(1)
            except Exception as e:
                logger.error(f"An unexpected error occurred processing '{audio_filename}': {e}", exc_info=True)
                files_failed += 1
            finally:
                pbar.update(1)

    logger.info("--- Batch transcription finished ---")
    logger.info(f"Total time: {time.time() - batch_start_time:.2f} seconds")
    logger.info(f"Successfully processed: {files_processed}/{total_files} files")
    logger.info(f"Failed: {files_failed}/{total_files} files")
    sys.exit(1 if files_failed > 0 else 0)

if __name__ == "__main__":
    run_batch_processing()
