"""Small text metrics shared by the agents."""

import math
import re
from typing import Dict, List

WORD_RE = re.compile(r"\b[\w'-]+\b", re.UNICODE)
WORDS_PER_MINUTE = 200


def count_words(text: str) -> int:
    return len(WORD_RE.findall(text or ""))


def reading_time_minutes(word_count: int) -> int:
    return math.ceil(word_count / WORDS_PER_MINUTE) if word_count > 0 else 0


def keyword_density(text: str, keywords: List[str]) -> Dict[str, float]:
    """Percent of words accounted for by each keyword phrase."""
    total = count_words(text)
    lowered = (text or "").lower()
    density = {}
    for keyword in keywords:
        if total == 0:
            density[keyword] = 0.0
            continue
        pattern = r"\b" + re.escape(keyword.lower()) + r"\b"
        hits = len(re.findall(pattern, lowered))
        density[keyword] = round(hits * max(count_words(keyword), 1) / total * 100, 2)
    return density


def truncate(text: str, max_length: int) -> str:
    """Cut at a word boundary without exceeding max_length."""
    text = " ".join((text or "").split())
    if len(text) <= max_length:
        return text
    cut = text[: max_length - 1]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip(",;:.") + "…"
