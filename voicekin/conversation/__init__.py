"""
Conversation recording: live diarized segments, summaries, and merging into profile history.
"""

from __future__ import annotations

from .merger import merge_conversation
from .recorder import ConversationRecorder, RecorderConfig, RecorderState
from .summary import summarize_conversation

__all__ = [
    "ConversationRecorder",
    "RecorderConfig",
    "RecorderState",
    "merge_conversation",
    "summarize_conversation",
]
