"""Flat-file storage for transcripts and the analyses derived from them."""

import logging
import os
import uuid

from .exceptions import FileSystemError
from .utils import ensure_dir_exists

logger = logging.getLogger(__name__)

TRANSCRIPTS_CATEGORY = "transcriptions"
ARTIFACT_EXTENSION = ".txt"

class TranscriptStore:
    """
    Stores each transcript as ``<root>/transcriptions/<id>.txt``.

    Analyses of a transcript are stored under ``<root>/<category>/<id>.txt``
    with the same id, so every artifact can be found from the transcript id.
    """

    def __init__(self, root: str):
        self.root = root

    def save_transcript(self, text: str) -> str:
        """Writes ``text`` under a fresh id and returns the id."""
        transcript_id = str(uuid.uuid4())
        self._write(TRANSCRIPTS_CATEGORY, transcript_id, text)
        logger.info(f"Transcript saved as {transcript_id}")
        return transcript_id

    def read_transcript(self, transcript_id: str) -> str:
        return self._read(TRANSCRIPTS_CATEGORY, transcript_id)

    def save_artifact(self, category: str, transcript_id: str, content: str) -> str:
        """Writes an analysis result for ``transcript_id`` and returns its path."""
        return self._write(category, transcript_id, content)

    def read_artifact(self, category: str, transcript_id: str) -> str:
        return self._read(category, transcript_id)

    def path_for(self, category: str, transcript_id: str) -> str:
        """
        Returns the file path for an artifact.

        ``transcript_id`` may carry the ``.txt`` suffix.

        Raises:
            FileSystemError: If the category or id would escape the store root.
        """
        for part in (category, transcript_id):
            if not part or os.sep in part or (os.altsep and os.altsep in part) or part in (".", ".."):
                raise FileSystemError(f"Invalid store key: {part!r}")
        file_name = transcript_id if transcript_id.endswith(ARTIFACT_EXTENSION) else transcript_id + ARTIFACT_EXTENSION
        return os.path.join(self.root, category, file_name)

    def _write(self, category: str, transcript_id: str, content: str) -> str:
        path = self.path_for(category, transcript_id)
        ensure_dir_exists(os.path.dirname(path))
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            logger.error(f"Failed to write {path}: {e}", exc_info=True)
            raise FileSystemError(f"Could not write {path}: {e}") from e
        return path

    def _read(self, category: str, transcript_id: str) -> str:
        path = self.path_for(category, transcript_id)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError as e:
            raise FileSystemError(f"No {category} entry for {transcript_id}") from e
        except OSError as e:
            raise FileSystemError(f"Could not read {path}: {e}") from e
