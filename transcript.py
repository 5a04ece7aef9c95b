"""Accumulates streamed speech fragments into an utterance and transcript."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from models import DEFAULT_STOP_PHRASES, Utterance


@dataclass(frozen=True)
class FragmentUpdate:
    """What a single fragment changed."""

    text: str
    is_finalizing: bool
    finalized: Optional[str] = None
    stop_requested: bool = False

    @property
    def text_length(self) -> int:
        return len(self.text)


class TranscriptAggregator:
    def __init__(
        self,
        stop_phrases: Iterable[str] = DEFAULT_STOP_PHRASES,
        retain_transcript: bool = True,
    ) -> None:
        self._stop_phrases = tuple(p.lower() for p in stop_phrases if p.strip())
        self._retain_transcript = retain_transcript
        self._utterance = Utterance()
        self._transcript: list[str] = []

    @property
    def utterance(self) -> Utterance:
        return Utterance(self._utterance.interim_text, self._utterance.is_finalizing)

    @property
    def transcript(self) -> tuple[str, ...]:
        return tuple(self._transcript)

    def on_fragment(self, text: str, is_final: bool) -> FragmentUpdate:
        if not is_final:
            self._utterance.interim_text = text
            self._utterance.is_finalizing = True
            return FragmentUpdate(text=text, is_finalizing=True)

        cleaned = text.strip()
        if cleaned:
            if self._retain_transcript:
                self._transcript.append(cleaned)
            else:
                self._transcript[:] = [cleaned]
        self._utterance.interim_text = cleaned
        self._utterance.is_finalizing = False
        return FragmentUpdate(
            text=cleaned,
            is_finalizing=False,
            finalized=cleaned,
            stop_requested=self.detect_stop_phrase(cleaned),
        )

    def detect_stop_phrase(self, text: str) -> bool:
        low = text.lower()
        return any(phrase in low for phrase in self._stop_phrases)

    def reset(self) -> None:
        self._utterance = Utterance()
        self._transcript.clear()
