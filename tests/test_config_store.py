from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from config import JsonConfigStore
from models import OverlayPolicy


def test_config_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    assert store.get_api_key() == ""
    assert store.get_hotkey() == "Key.f9"

    store.set_api_key("abc")
    store.set_hotkey("Key.f8")

    reloaded = JsonConfigStore(path=path)
    assert reloaded.get_api_key() == "abc"
    assert reloaded.get_hotkey() == "Key.f8"


def test_config_invalid_json_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_api_key() == ""
    assert store.get_hotkey() == "Key.f9"
    assert store.get_policy() == OverlayPolicy()


def test_config_non_object_payload_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert JsonConfigStore(path=path).get_api_key() == ""


def test_wake_word_and_logging_settings(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)
    assert store.get_wake_word_model() == "hey_jarvis"
    assert store.get_wake_word_threshold() == 0.5
    assert store.get_log_level() == "INFO"

    path.write_text(
        json.dumps(
            {"wake_word_model": "alexa", "wake_word_threshold": "high", "log_level": "debug"}
        ),
        encoding="utf-8",
    )
    assert store.get_wake_word_model() == "alexa"
    assert store.get_wake_word_threshold() == 0.5
    assert store.get_log_level() == "DEBUG"


def test_policy_overrides(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "policy": {
                    "inactivity_timeout_ms": 15000,
                    "retain_transcript": False,
                    "significant_ratio": 1,
                    "stop_phrases": ["that's all"],
                }
            }
        ),
        encoding="utf-8",
    )

    policy = JsonConfigStore(path=path).get_policy()

    assert policy.inactivity_timeout_ms == 15000
    assert policy.retain_transcript is False
    assert policy.significant_ratio == 1.0
    assert policy.stop_phrases == ("that's all",)
    assert policy.resize_debounce_ms == 400


@pytest.mark.parametrize(
    "key,value",
    [
        ("inactivity_timeout_ms", -1),
        ("inactivity_timeout_ms", "10"),
        ("inactivity_timeout_ms", True),
        ("retain_transcript", 1),
        ("stop_phrases", "goodbye"),
        ("stop_phrases", ["ok", 3]),
    ],
)
def test_invalid_policy_values_are_ignored(
    tmp_path: Path, caplog: pytest.LogCaptureFixture, key: str, value: object
) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"policy": {key: value}}), encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="config"):
        policy = JsonConfigStore(path=path).get_policy()

    assert getattr(policy, key) == getattr(OverlayPolicy(), key)
    assert "Ignoring invalid policy value" in caplog.text


def test_policy_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)
    policy = OverlayPolicy(reconnect_delay_ms=2000, wake_keywords=("Hey Jackson", "Jackson"))

    store.set_policy(policy)

    assert JsonConfigStore(path=path).get_policy() == policy
    assert json.loads(path.read_text(encoding="utf-8"))["policy"]["wake_keywords"] == [
        "Hey Jackson",
        "Jackson",
    ]
