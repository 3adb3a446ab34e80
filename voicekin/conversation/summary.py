"""Plain-text conversation summary: who spoke, frequent topic words, segment count."""

from __future__ import annotations

from collections import Counter
from typing import Sequence

from ..models import ConversationSegment

STOPWORDS = frozenset({"the", "and", "that", "this", "with", "from", "have", "were", "been"})
MIN_TOPIC_WORD_LENGTH = 4
MAX_TOPICS = 5


def speaker_names(segments: Sequence[ConversationSegment]) -> list[str]:
    """Distinct non-empty speaker names in order of first appearance."""
    names: list[str] = []
    for segment in segments:
        if segment.speaker_name and segment.speaker_name not in names:
            names.append(segment.speaker_name)
    return names


def main_topics(segments: Sequence[ConversationSegment], limit: int = MAX_TOPICS) -> list[str]:
    # Counter.most_common keeps first-seen order among equal counts
    words = " ".join(s.text for s in segments).lower().split()
    counts = Counter(
        w for w in words if len(w) >= MIN_TOPIC_WORD_LENGTH and w not in STOPWORDS
    )
    return [word for word, _ in counts.most_common(limit)]


def summarize_conversation(segments: Sequence[ConversationSegment]) -> str:
    names = speaker_names(segments)
    if names:
        text = f"Conversation with {' and '.join(names)}. "
    else:
        text = "Conversation recorded. "
    topics = main_topics(segments)
    if topics:
        text += f"Main topics: {', '.join(topics)}. "
    return text + f"Total segments: {len(segments)}."


__all__ = ["STOPWORDS", "main_topics", "speaker_names", "summarize_conversation"]
