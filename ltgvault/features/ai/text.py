"""Post-processing for generated text."""

import json
import re
from typing import List, Optional

_DASHES = ("—", "–", "‒", "―")

BANNED_OPENERS = (
    "I used to",
    "I realized",
    "I learned",
    "I thought",
    "I discovered",
    "A few years ago",
    "When I started",
    "When I first",
)

_NUMBERING_RE = re.compile(r"^\s*(?:\d+\s*/\s*\d*|\d+[.):])\s*")
_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_TIMESTAMP_RE = re.compile(r"^\s*\[?(?:(\d+):)?(\d{1,2}):(\d{2})\]?\s*[-:.)]?\s*(.+?)\s*$")
_TRANSCRIPT_TS_RE = re.compile(r"\[?(\d+):(\d{2})\]?")


def clean_content(text: Optional[str]) -> Optional[str]:
    """Replace em/en dashes with commas and tidy the spacing around them."""
    if not text:
        return text
    cleaned = text
    for dash in _DASHES:
        cleaned = cleaned.replace(f" {dash} ", ", ").replace(dash, ", ")
    cleaned = re.sub(r" {2,}", " ", cleaned)
    cleaned = cleaned.replace(" ,", ",")
    cleaned = re.sub(r",(\s*,)+", ",", cleaned)
    return cleaned.strip()


def banned_opener(text: str) -> Optional[str]:
    """Return the banned opener the text starts with, if any."""
    head = (text or "").lstrip().lower()
    for phrase in BANNED_OPENERS:
        if head.startswith(phrase.lower()):
            return phrase
    return None


def strip_numbering(line: str) -> str:
    return _NUMBERING_RE.sub("", line, count=1).strip()


def parse_string_list(raw: str) -> List[str]:
    """Pull a JSON array of strings out of a model response.

    Falls back to one item per non-empty line when no array is present.
    """
    match = _JSON_ARRAY_RE.search(raw or "")
    if match:
        try:
            items = json.loads(match.group(0))
        except json.JSONDecodeError:
            items = None
        if isinstance(items, list):
            return [str(item).strip() for item in items if str(item).strip()]
    return [strip_numbering(line) for line in (raw or "").splitlines() if strip_numbering(line)]


def clamp_tweet(tweet: str, limit: int = 280) -> str:
    if len(tweet) <= limit:
        return tweet
    return tweet[: limit - 3].rstrip() + "..."


def format_timestamp(total_seconds: int) -> str:
    minutes, seconds = divmod(max(total_seconds, 0), 60)
    return f"{minutes:02d}:{seconds:02d}"


def parse_chapters(raw: str) -> List[str]:
    """Normalize model output into "MM:SS Title" markers, sorted, starting at 00:00."""
    chapters = []
    for line in (raw or "").splitlines():
        match = _TIMESTAMP_RE.match(line)
        if not match:
            continue
        hours, minutes, seconds, title = match.groups()
        total = int(hours or 0) * 3600 + int(minutes) * 60 + int(seconds)
        title = clean_content(title.strip(" -"))
        if title:
            chapters.append((total, title))

    chapters.sort(key=lambda item: item[0])
    if chapters and chapters[0][0] != 0:
        chapters[0] = (0, chapters[0][1])
    return [f"{format_timestamp(total)} {title}" for total, title in chapters]


def transcript_duration(transcript: str, default: str = "10:00") -> str:
    """Last timestamp found in the transcript, used as the video length hint."""
    matches = _TRANSCRIPT_TS_RE.findall(transcript or "")
    if not matches:
        return default
    minutes, seconds = matches[-1]
    return f"{int(minutes):02d}:{seconds}"
