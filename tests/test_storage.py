from __future__ import annotations

import pytest

from segscribe.exceptions import FileSystemError
from segscribe.storage import TranscriptStore


def test_transcript_is_saved_under_a_fresh_id(tmp_path):
    store = TranscriptStore(str(tmp_path))

    first = store.save_transcript("hello world")
    second = store.save_transcript("another one")

    assert first != second
    assert (tmp_path / "transcriptions" / f"{first}.txt").read_text(encoding="utf-8") == "hello world"
    assert store.read_transcript(first) == "hello world"
    assert store.read_transcript(f"{first}.txt") == "hello world"


def test_artifacts_share_the_transcript_id(tmp_path):
    store = TranscriptStore(str(tmp_path))
    transcript_id = store.save_transcript("hello world")

    path = store.save_artifact("summaries", transcript_id, "a greeting")

    assert path == str(tmp_path / "summaries" / f"{transcript_id}.txt")
    assert store.read_artifact("summaries", transcript_id) == "a greeting"


def test_reading_an_unknown_id_fails(tmp_path):
    with pytest.raises(FileSystemError):
        TranscriptStore(str(tmp_path)).read_transcript("does-not-exist")


@pytest.mark.parametrize("transcript_id", ["../secrets", "..", "", "nested/id"])
def test_ids_cannot_escape_the_store(tmp_path, transcript_id):
    with pytest.raises(FileSystemError):
        TranscriptStore(str(tmp_path)).read_transcript(transcript_id)
