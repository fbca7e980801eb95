"""Runs instructions over transcript text with a chat completion endpoint."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, NamedTuple, Optional

import requests

from .exceptions import CompletionError, ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_COMPLETION_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_COMPLETION_MODEL = "gpt-4o-mini"

class Analysis(NamedTuple):
    instruction: str
    category: str # store directory for the result

ANALYSES: Dict[str, Analysis] = {
    "summary": Analysis("Summarize the following transcription.", "summaries"),
    "key_points": Analysis("Extract key points from the transcription.", "key_points"),
    "action_items": Analysis("Extract action items from the transcription.", "action_items"),
    "participants": Analysis("Extract participants and their details from the transcription.", "participants"),
}

class TextProcessor(ABC):
    """Abstract base class for services that apply an instruction to text."""

    @abstractmethod
    def complete(self, text: str, instruction: str) -> str:
        """
        Applies ``instruction`` to ``text``.

        Args:
            text: The text to work on.
            instruction: What to do with it, sent as the system message.

        Returns:
            The generated text.

        Raises:
            CompletionError: If the request fails.
        """
        pass

class OpenAIChatProcessor(TextProcessor):
    """Implements text processing with an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_COMPLETION_MODEL,
        endpoint: str = DEFAULT_COMPLETION_URL,
        timeout: Optional[float] = 600,
        session: Optional[requests.Session] = None
    ):
        if not api_key:
            raise ConfigurationError("A bearer credential is required for text completion.")
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()
        logger.info(f"Initializing OpenAIChatProcessor with model '{self.model}'")

    def complete(self, text: str, instruction: str) -> str:
        body = {
            "model": self.model,
            "temperature": 0.0,
            "messages": [
                {"role": "system", "content": instruction},
                {"role": "user", "content": text},
            ],
        }
        logger.debug(f"Requesting completion ({len(text)} chars): '{instruction[:50]}'")
        try:
            response = self.session.post(
                self.endpoint,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=body,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise CompletionError(f"Completion request failed: {e}") from e

        if not response.ok:
            raise CompletionError(f"Completion endpoint returned HTTP {response.status_code}: {response.text[:200]}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CompletionError(f"Unexpected completion response: {e}") from e
        if not isinstance(content, str):
            raise CompletionError("Completion response has no text content")
        return content

class TranscriptAnalyzer:
    """Summaries and extractions over a finished transcript."""

    def __init__(self, processor: TextProcessor):
        self.processor = processor

    def analyze(self, kind: str, transcript_text: str) -> str:
        """
        Runs the named analysis over ``transcript_text``.

        Raises:
            ConfigurationError: If ``kind`` is not one of ``ANALYSES``.
            CompletionError: If the completion request fails.
        """
        analysis = ANALYSES.get(kind)
        if analysis is None:
            raise ConfigurationError(f"Unknown analysis '{kind}'. Choose one of: {', '.join(ANALYSES)}")
        logger.info(f"Running '{kind}' analysis over {len(transcript_text)} chars of transcript")
        return self.processor.complete(transcript_text, analysis.instruction)

    def summarize(self, transcript_text: str) -> str:
        return self.analyze("summary", transcript_text)

    def key_points(self, transcript_text: str) -> str:
        return self.analyze("key_points", transcript_text)

    def action_items(self, transcript_text: str) -> str:
        return self.analyze("action_items", transcript_text)

    def participants(self, transcript_text: str) -> str:
        return self.analyze("participants", transcript_text)
