"""
Attach a finished conversation to the profiles of the people who took part.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from ..models import CONVERSATION_HISTORY_LIMIT, Conversation, Profile, ProfileId

logger = logging.getLogger(__name__)


def format_note_timestamp(epoch_sec: float) -> str:
    """Local date and time in the current locale's representation."""
    return datetime.fromtimestamp(epoch_sec).strftime("%x %X")


def conversation_note(conversation: Conversation) -> str:
    return (
        f"[Last conversation - {format_note_timestamp(conversation.start_time)}]: "
        f"{conversation.summary}"
    )


def apply_conversation(
    profile: Profile,
    conversation: Conversation,
    history_limit: int = CONVERSATION_HISTORY_LIMIT,
) -> None:
    """Record conversation as the profile's latest; keeps the newest history_limit entries."""
    profile.last_conversation = conversation
    history = list(profile.conversation_history)
    history.append(conversation)
    profile.conversation_history = history[-history_limit:]
    note = conversation_note(conversation)
    profile.notes = f"{profile.notes}\n\n{note}" if profile.notes else note


def merge_conversation(
    conversation: Conversation | None, gallery: Sequence[Profile]
) -> list[ProfileId]:
    """
    Apply conversation to every participant's profile and return the updated ids.

    When no speaker was identified the conversation goes to the first profile (in
    gallery order) with an enrolled voice, as a best guess. When there is no such
    profile nothing is updated.
    """
    if conversation is None:
        return []
    participants = set(conversation.participants)
    targets = [p for p in gallery if p.id in participants]
    if not targets and not participants:
        fallback = next((p for p in gallery if p.voice_feature_vector is not None), None)
        if fallback is not None:
            logger.info(
                "No identified speakers in conversation %s; attaching to %s",
                conversation.id,
                fallback.name,
            )
            targets = [fallback]
    if not targets:
        logger.info("Conversation %s not attached to any profile", conversation.id)
        return []
    for profile in targets:
        apply_conversation(profile, conversation)
        logger.debug("Conversation %s merged into profile %s", conversation.id, profile.id)
    return [p.id for p in targets]


__all__ = ["apply_conversation", "conversation_note", "format_note_timestamp", "merge_conversation"]
