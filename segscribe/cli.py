"""Command-Line Interface handler for segscribe."""

import argparse
import logging
import os
import sys

from .config_loader import ConfigLoader, resolve_api_key
from .log_setup import setup_logging
from .pipeline import SegmentPipeline
from .completion import ANALYSES, OpenAIChatProcessor, TranscriptAnalyzer
from .storage import TranscriptStore
from .exceptions import SegScribeError, ConfigurationError

logger = logging.getLogger(__name__)

class CLIHandler:
    """Parses arguments and runs transcription or transcript analysis."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            description="segscribe: Transcribe long recordings in parallel segments and analyse the result.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
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
        subparsers = parser.add_subparsers(dest="command", required=True)

        transcribe = subparsers.add_parser(
            "transcribe",
            help="Transcribe an audio file and store the transcript.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )
        transcribe.add_argument("audio", help="Path to the input audio file.")
        transcribe.add_argument(
            "--max-segment-bytes",
            type=int,
            default=None, # Default taken from config
            help="Override the maximum encoded size of each segment."
        )
        transcribe.add_argument(
            "--workers",
            type=int,
            default=None,
            help="Override the number of segments processed at once."
        )
        transcribe.add_argument(
            "--temp-dir",
            default=None,
            help="Override the directory that holds segment files during a run."
        )

        analyze = subparsers.add_parser(
            "analyze",
            help="Run an analysis over a stored transcript.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )
        analyze.add_argument("transcript_id", help="Id printed by the transcribe command.")
        analyze.add_argument(
            "--kind",
            default="summary",
            choices=sorted(ANALYSES),
            help="Which analysis to run."
        )
        return parser

    def load_config(self, args: argparse.Namespace) -> dict:
        """Loads the config file and applies command line overrides."""
        config = ConfigLoader().load_config(args.config)
        overrides = {
            'temp_dir': getattr(args, 'temp_dir', None),
            'max_segment_bytes': getattr(args, 'max_segment_bytes', None),
            'max_workers': getattr(args, 'workers', None),
        }
        for key, value in overrides.items():
            if value is not None:
                logger.info(f"Overriding {key} from config with CLI argument: {value}")
                config[key] = value
        ConfigLoader.validate(config)
        return config

    def transcribe(self, args: argparse.Namespace, config: dict) -> str:
        """Transcribes ``args.audio`` and returns the stored transcript id."""
        if not os.path.isfile(args.audio):
            raise SegScribeError(f"Input audio file not found or is not a file: {args.audio}")

        pipeline = SegmentPipeline.from_config(config, resolve_api_key(config))
        transcript = pipeline.run(args.audio, config['max_segment_bytes'])
        if not transcript.is_complete:
            logger.warning(
                f"{transcript.failure_count} of {len(transcript.results)} segment(s) failed; "
                "the stored transcript has gaps"
            )

        text = transcript.render(separator=" ", gap_marker=config.get('gap_marker'))
        return TranscriptStore(config['data_dir']).save_transcript(text)

    def analyze(self, args: argparse.Namespace, config: dict) -> str:
        """Runs the requested analysis, stores it next to the transcript and returns it."""
        store = TranscriptStore(config['data_dir'])
        transcript_text = store.read_transcript(args.transcript_id)
        processor = OpenAIChatProcessor(
            api_key=resolve_api_key(config),
            model=config['completion_model'],
            endpoint=config['completion_url'],
            timeout=config.get('segment_timeout_secs'),
        )
        result = TranscriptAnalyzer(processor).analyze(args.kind, transcript_text)
        path = store.save_artifact(ANALYSES[args.kind].category, args.transcript_id, result)
        logger.info(f"Saved {args.kind} to {path}")
        return result

    def run(self, argv=None) -> None:
        """Parses arguments, sets up logging, loads config, and runs the command."""
        args = self.parser.parse_args(argv)

        log_level = getattr(logging, args.log_level.upper(), logging.INFO)
        # Temporary logging so config loading errors are recorded somewhere
        setup_logging(log_level=log_level, log_dir='logs', log_file='segscribe_init.log')

        try:
            config = self.load_config(args)
        except ConfigurationError as e:
            logger.critical(f"Failed to load configuration from {args.config}: {e}")
            sys.exit(1)
        except FileNotFoundError:
            logger.critical(f"Configuration file not found: {args.config}")
            sys.exit(1)

        setup_logging(log_level=log_level, log_dir=config['log_dir'], log_file=config['log_file'])
        logger.info("Logging re-configured with settings from config file.")

        try:
            if args.command == "transcribe":
                transcript_id = self.transcribe(args, config)
                print(transcript_id)
            else:
                print(self.analyze(args, config))
            sys.exit(0)
        except SegScribeError as e:
            logger.error(f"A segscribe error occurred: {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            logger.warning("Process interrupted by user (Ctrl+C). Exiting.")
            sys.exit(1)
        except Exception as e:
            logger.critical(f"An unexpected critical error occurred at the top level: {e}", exc_info=True)
            sys.exit(2)

def main() -> None:
    CLIHandler().run()
