from __future__ import annotations

import re
from typing import Protocol

from .models import CaptureCandidate

_NON_PRINTABLE_RE = re.compile(r"[^\x20-\x7E]")
_WHITESPACE_RE = re.compile(r"\s+")


class CandidateParser(Protocol):
    """Turns decoded label text into a structured candidate.

    Label layouts belong to the parser; the engine only needs ``serial``.
    """

    def parse(self, raw_text: str) -> CaptureCandidate: ...


def clean_payload(raw_text: str | None) -> str:
    text = _NON_PRINTABLE_RE.sub(" ", str(raw_text or ""))
    return _WHITESPACE_RE.sub(" ", text).strip()


class RawTextParser:
    """Fallback parser: the cleaned decoded text is the serial."""

    def parse(self, raw_text: str) -> CaptureCandidate:
        cleaned = clean_payload(raw_text)
        return CaptureCandidate(serial=cleaned, raw_payload=cleaned or None)
