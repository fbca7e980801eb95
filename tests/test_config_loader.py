from __future__ import annotations

import pytest

from segscribe.config_loader import DEFAULT_CONFIG, ConfigLoader, resolve_api_key
from segscribe.exceptions import ConfigurationError


def test_missing_keys_take_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("max_workers: 8\ngap_marker: '[inaudible]'\n", encoding="utf-8")

    config = ConfigLoader().load_config(str(path))

    assert config["max_workers"] == 8
    assert config["gap_marker"] == "[inaudible]"
    assert config["bitrate_kbps"] == DEFAULT_CONFIG["bitrate_kbps"]
    assert config["temp_dir"] == DEFAULT_CONFIG["temp_dir"]


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")

    assert ConfigLoader().load_config(str(path)) == DEFAULT_CONFIG


@pytest.mark.parametrize(
    "content",
    [
        "max_workers: [unclosed",
        "- just\n- a list\n",
        "max_workers: 0\n",
        "bitrate_kbps: -128\n",
        "transcription_retries: -1\n",
        "max_segment_bytes: lots\n",
        "segment_timeout_secs: 0\n",
    ],
)
def test_invalid_files_are_rejected(tmp_path, content):
    path = tmp_path / "config.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        ConfigLoader().load_config(str(path))


def test_missing_file_raises_file_not_found(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigLoader().load_config(str(tmp_path / "absent.yaml"))


def test_api_key_comes_from_the_configured_variable(monkeypatch):
    monkeypatch.setenv("STT_TOKEN", " secret ")

    assert resolve_api_key({"api_key_env": "STT_TOKEN"}) == "secret"


def test_missing_api_key_is_a_configuration_error(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        resolve_api_key(ConfigLoader.with_defaults())
