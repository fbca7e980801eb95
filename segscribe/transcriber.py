"""Handles Speech-to-Text transcription against a remote endpoint."""

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import requests
from requests.adapters import HTTPAdapter

from .exceptions import ConfigurationError, TranscriptionError

logger = logging.getLogger(__name__)

DEFAULT_TRANSCRIPTION_URL = "https://api.openai.com/v1/audio/transcriptions"
DEFAULT_TRANSCRIPTION_MODEL = "whisper-1"
SEGMENT_MIME_TYPE = "audio/mpeg"

class Transcriber(ABC):
    """Abstract base class for transcription services."""

    @abstractmethod
    def transcribe(self, audio_path: str) -> str:
        """
        Transcribes the given audio file.

        Args:
            audio_path: Path to the audio file.

        Returns:
            The transcribed text.

        Raises:
            TranscriptionError: If transcription fails.
        """
        pass

class OpenAITranscriber(Transcriber):
    """
    Uploads audio to an OpenAI-compatible ``/audio/transcriptions`` endpoint.

    One instance is shared by every worker of a pipeline run; the underlying
    ``requests.Session`` only pools connections, it holds no per-request state.
    No retries are attempted here.

    The multipart body is assembled in memory before it is sent, so each
    in-flight request holds one segment (at most ``max_segment_bytes``).
    The returned text is passed through exactly as the service sent it.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_TRANSCRIPTION_MODEL,
        endpoint: str = DEFAULT_TRANSCRIPTION_URL,
        timeout: Optional[float] = 600,
        pool_size: int = 10,
        session: Optional[requests.Session] = None
    ):
        """
        Initializes the OpenAITranscriber.

        Args:
            api_key: Bearer credential sent with every request.
            model: Value of the ``model`` form field.
            endpoint: Full URL of the transcription endpoint.
            timeout: Seconds to wait for connect and for the response.
            pool_size: Connections kept open to the endpoint, one per worker.
            session: Optional pre-built session (used by tests).

        Raises:
            ConfigurationError: If no credential is supplied.
        """
        if not api_key:
            raise ConfigurationError("A bearer credential is required for transcription.")
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=1, pool_maxsize=pool_size)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session
        logger.info(f"Initializing OpenAITranscriber with model '{self.model}' at {self.endpoint}")

    def transcribe(self, audio_path: str) -> str:
        logger.info(f"Sending transcription request for file: {audio_path}")
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            with open(audio_path, "rb") as audio_file:
                response = self.session.post(
                    self.endpoint,
                    headers=headers,
                    data={"model": self.model},
                    files={"file": (os.path.basename(audio_path), audio_file, SEGMENT_MIME_TYPE)},
                    timeout=self.timeout,
                )
        except requests.exceptions.RequestException as e:
            raise TranscriptionError(f"Request for {audio_path} failed: {e}") from e
        except OSError as e:
            raise TranscriptionError(f"Could not read {audio_path}: {e}") from e

        if not response.ok:
            raise TranscriptionError(
                f"Endpoint returned HTTP {response.status_code} for {audio_path}: {response.text[:200]}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TranscriptionError(f"Response for {audio_path} is not JSON: {e}") from e

        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            raise TranscriptionError(f"Response for {audio_path} has no 'text' field")

        logger.info(f"Received transcription for file: {audio_path}")
        return text
