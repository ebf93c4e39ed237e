from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Literal

logger = logging.getLogger(__name__)

REFUSAL = "I don't have information about this topic in the provided study material."

GroundingMode = Literal["qa", "summary", "dialogue"]

VIDEO_PATTERN = re.compile(r"\byoutube\b", re.IGNORECASE)
TIMESTAMP_PATTERN = re.compile(r"\b\d{1,2}:\d{2}(?:\s*[–—-]\s*\d{1,2}:\d{2})?\b")
PAGE_PATTERN = re.compile(r"page\s+\d+\s*\(physical\)", re.IGNORECASE)
SMALL_TALK_PATTERN = re.compile(
    r"^\s*(hello|hi|hey|greetings|thanks|thank you|bye|goodbye|see you|cheers|"
    r"good (?:morning|afternoon|evening)|you're welcome|no problem|nice to meet)\b",
    re.IGNORECASE,
)
SHORT_REPLY_WORDS = 15


@dataclass(frozen=True)
class GroundedAnswer:
    answer: str
    is_grounded: bool


def cites_video(text: str) -> bool:
    return bool(VIDEO_PATTERN.search(text) or TIMESTAMP_PATTERN.search(text))


def cites_page(text: str) -> bool:
    return bool(PAGE_PATTERN.search(text))


def cites_source_name(text: str, source_names: Iterable[str]) -> bool:
    for name in source_names:
        name = (name or "").strip()
        if name and re.search(re.escape(name), text, re.IGNORECASE):
            return True
    return False


def cites(text: str, source_names: Iterable[str]) -> bool:
    return cites_video(text) or cites_page(text) or cites_source_name(text, source_names)


def is_small_talk(text: str) -> bool:
    if SMALL_TALK_PATTERN.search(text):
        return True
    return len(text.split()) < SHORT_REPLY_WORDS and "?" not in text


def enforce(raw_text: str | None, source_names: Iterable[str], mode: GroundingMode) -> GroundedAnswer:
    """
    Apply the citation check to a model answer.

    Q&A and summary answers that cannot be tied back to the study material are replaced
    with the fixed refusal. Dialogue replies are never rewritten; only ``is_grounded``
    reflects the check.
    """
    text = (raw_text or "").strip()
    names = list(source_names)

    if mode == "dialogue":
        if not text:
            return GroundedAnswer(answer=text, is_grounded=False)
        if is_small_talk(text):
            return GroundedAnswer(answer=text, is_grounded=True)
        return GroundedAnswer(answer=text, is_grounded=cites(text, names))

    if not text or text == REFUSAL or not cites(text, names):
        if text and text != REFUSAL:
            logger.info("Rejected uncited %s answer (%d chars)", mode, len(text))
        return GroundedAnswer(answer=REFUSAL, is_grounded=False)
    return GroundedAnswer(answer=text, is_grounded=True)
