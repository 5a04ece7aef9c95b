"""Shared error codes and user-facing messages."""

from __future__ import annotations

PERMISSION_DENIED = "PERMISSION_DENIED"
AUTH_FAILED = "AUTH_FAILED"
NETWORK_ERROR = "NETWORK_ERROR"
SPEECH_UNAVAILABLE = "SPEECH_UNAVAILABLE"
ENGINE_ERROR = "ENGINE_ERROR"
ENGINE_START_FAILED = "ENGINE_START_FAILED"
WAKE_WORD_UNAVAILABLE = "WAKE_WORD_UNAVAILABLE"
WINDOW_COMMAND_FAILED = "WINDOW_COMMAND_FAILED"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Microphone access denied. Please allow microphone access.",
    AUTH_FAILED: "Speech service rejected the API key.",
    NETWORK_ERROR: "Speech service unreachable, retrying.",
    SPEECH_UNAVAILABLE: "Speech recognition not supported on this system.",
    ENGINE_ERROR: "Speech recognition error, retrying.",
    ENGINE_START_FAILED: "Failed to start speech recognition.",
    WAKE_WORD_UNAVAILABLE: "Wake word detection unavailable. Speech recognition still works.",
    WINDOW_COMMAND_FAILED: "Window command failed.",
}


def message_for(code: str, fallback: str = "") -> str:
    return ERROR_MESSAGES.get(code, fallback or code)
