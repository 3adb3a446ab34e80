"""
Tests for conversation summaries and merging conversations into profiles.
"""

from voicekin.conversation.merger import (
    apply_conversation,
    conversation_note,
    format_note_timestamp,
    merge_conversation,
)
from voicekin.conversation.summary import main_topics, summarize_conversation
from voicekin.models import Conversation, ConversationSegment, Profile, VoiceFeatureVector

STORED_VOICE = VoiceFeatureVector(
    spectral_coeffs=(1.0,) * 13,
    pitch_hz=150.0,
    energy_rms=0.1,
    duration_sec=1.0,
    zero_crossing_rate=0.1,
)


def _conversation(conv_id="c1", participants=(), summary="Conversation recorded. Total segments: 1.", start=1_700_000_000.0):
    return Conversation(
        id=conv_id,
        start_time=start,
        end_time=start + 60,
        segments=(ConversationSegment(text="hi", timestamp_sec=1.0),),
        summary=summary,
        participants=tuple(participants),
    )


def test_summary_with_speakers_and_topics():
    segments = [
        ConversationSegment("the garden needs water", 1.0, 1, "Alice", 0.9),
        ConversationSegment("water the garden tomorrow", 2.0, 2, "Bob", 0.8),
        ConversationSegment("tomorrow then", 3.0),
    ]

    assert summarize_conversation(segments) == (
        "Conversation with Alice and Bob. Main topics: garden, water, tomorrow, needs, then. "
        "Total segments: 3."
    )


def test_summary_without_identified_speakers():
    segments = [ConversationSegment("ok", 1.0)]

    assert summarize_conversation(segments) == "Conversation recorded. Total segments: 1."


def test_topics_skip_stopwords_and_short_words():
    segments = [ConversationSegment("this that with were been from have the and cat dog", 0.0)]

    assert main_topics(segments) == []


def test_topics_ties_keep_first_occurrence():
    segments = [ConversationSegment("zebra apple mango zebra apple mango kiwis", 0.0)]

    assert main_topics(segments, limit=3) == ["zebra", "apple", "mango"]


def test_merge_into_participants():
    alice = Profile(id=1, name="Alice", notes="Neighbour")
    bob = Profile(id=2, name="Bob")
    conversation = _conversation(participants=(1,))

    updated = merge_conversation(conversation, [alice, bob])

    assert updated == [1]
    assert alice.last_conversation is conversation
    assert alice.conversation_history == [conversation]
    assert alice.notes == f"Neighbour\n\n{conversation_note(conversation)}"
    assert bob.last_conversation is None


def test_note_format():
    conversation = _conversation(summary="Conversation with Alice. Total segments: 1.")

    assert conversation_note(conversation) == (
        f"[Last conversation - {format_note_timestamp(conversation.start_time)}]: "
        "Conversation with Alice. Total segments: 1."
    )


def test_empty_notes_become_the_note():
    profile = Profile(id=1, name="Alice")
    conversation = _conversation()

    apply_conversation(profile, conversation)

    assert profile.notes == conversation_note(conversation)


def test_history_keeps_last_ten():
    profile = Profile(id=1, name="Alice")
    conversations = [_conversation(conv_id=f"c{i}", participants=(1,)) for i in range(15)]

    for conversation in conversations:
        merge_conversation(conversation, [profile])

    assert len(profile.conversation_history) == 10
    assert [c.id for c in profile.conversation_history] == [f"c{i}" for i in range(5, 15)]
    assert profile.last_conversation.id == "c14"


def test_no_participants_falls_back_to_first_voiced_profile():
    no_voice = Profile(id=1, name="Alice")
    voiced = Profile(id=2, name="Bob", voice_feature_vector=STORED_VOICE)
    also_voiced = Profile(id=3, name="Carol", voice_feature_vector=STORED_VOICE)

    updated = merge_conversation(_conversation(), [no_voice, voiced, also_voiced])

    assert updated == [2]
    assert voiced.last_conversation is not None
    assert also_voiced.last_conversation is None


def test_no_participants_and_no_voices_is_a_no_op():
    profile = Profile(id=1, name="Alice")

    assert merge_conversation(_conversation(), [profile]) == []
    assert profile.conversation_history == []
    assert profile.notes == ""


def test_none_conversation_is_a_no_op():
    assert merge_conversation(None, [Profile(id=1, name="Alice", voice_feature_vector=STORED_VOICE)]) == []
