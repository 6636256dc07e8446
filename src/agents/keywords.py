"""
Local keyword frequency fallback for feature extraction.
Used when the language model's feature list cannot be parsed.
"""

from collections import Counter
from typing import List
import re

from src.models.schemas import FeatureMention


# Non-ASCII letters count as word boundaries, so "café" yields "caf"
WORD_PATTERN = re.compile(r"\b[a-z]{3,}\b", re.ASCII)

STOP_WORDS = frozenset([
    "the", "a", "an", "and", "or", "but", "is", "are", "was", "were", "be",
    "been", "being", "have", "has", "had", "do", "does", "did", "will",
    "would", "could", "should", "this", "that", "these", "those", "i", "you",
    "he", "she", "it", "we", "they", "my", "your", "his", "her", "its", "our",
    "their", "me", "him", "them", "us", "so", "than", "too", "very", "just",
    "can", "to", "of", "in", "for", "on", "with", "as", "by", "at", "from",
])


def extract_keywords(messages: List[str], top_n: int = 3) -> List[FeatureMention]:
    """
    Count non-stop-words of three or more letters across messages.

    Ties keep first-seen order, so the result is deterministic for a given input.

    Args:
        messages: Feedback texts
        top_n: Number of keywords to return

    Returns:
        Up to ``top_n`` FeatureMention objects, most frequent first
    """
    counts = Counter()
    for message in messages:
        for word in WORD_PATTERN.findall(message.lower()):
            if word not in STOP_WORDS:
                counts[word] += 1

    return [
        FeatureMention(feature=word, mentions=count)
        for word, count in counts.most_common(top_n)
    ]
