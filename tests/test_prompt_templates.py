import itertools

import pytest

from dictation.agents.preferences import ResolvedPreferences, normalize_preferences, resolve_preferences
from dictation.agents.prompt_templates import (
    DIFFICULTY_GUIDELINES,
    JSON_ONLY_SUFFIX,
    LENGTH_GUIDELINES,
    SYSTEM_PREAMBLE,
    build_full_prompt,
    build_prompt,
)
from dictation.api.schemas.exercise_schemas import Difficulty, Preferences, SentenceLength
from dictation.utils.exceptions import PreferenceFormatError


@pytest.mark.parametrize("sentence_length, difficulty", list(itertools.product(SentenceLength, Difficulty)))
def test_prompt_contains_requested_range_and_level(sentence_length, difficulty):
    preferences = Preferences(sentence_length=sentence_length, difficulty=difficulty)
    prompt = build_prompt(preferences)

    assert f"EXACTLY {LENGTH_GUIDELINES[sentence_length]['range']} words" in prompt
    assert DIFFICULTY_GUIDELINES[difficulty] in prompt
    assert f"for {difficulty.value} level" in prompt
    for other in Difficulty:
        if other != difficulty:
            assert f"for {other.value} level" not in prompt


def test_word_count_ranges():
    assert LENGTH_GUIDELINES[SentenceLength.SHORT]["range"] == "5-8"
    assert LENGTH_GUIDELINES[SentenceLength.MEDIUM]["range"] == "10-15"
    assert LENGTH_GUIDELINES[SentenceLength.LONG]["range"] == "18-25"


def test_prompt_demands_json_shape_and_chunk_rules():
    prompt = build_prompt(Preferences(sentence_length="short", difficulty="A1"))

    for key in ("sentence", "chunks", "translation", "chunkTranslations", "wordMeanings"):
        assert f'"{key}"' in prompt
    assert "END of the sentence" in prompt
    assert "UNIQUE" in prompt
    assert "(詞性)" in prompt


def test_topics_and_custom_sentence_are_merged():
    preferences = Preferences(
        topics=["旅遊", "餐廳"],
        sentence_length="medium",
        difficulty="B1",
        custom_sentence="ordering coffee",
    )
    prompt = build_prompt(preferences)
    assert "topics: 旅遊, 餐廳, ordering coffee" in prompt


def test_no_topics_means_any_common_topic():
    prompt = build_prompt(Preferences(sentence_length="long", difficulty="C2"))
    assert "Topics: any common topic" in prompt


def test_unset_fields_are_resolved_with_injected_rng(first_choice):
    prompt = build_prompt(Preferences(), rng=first_choice)

    assert "EXACTLY 5-8 words" in prompt
    assert DIFFICULTY_GUIDELINES[Difficulty.A1] in prompt


def test_build_prompt_is_deterministic_for_resolved_preferences():
    resolved = ResolvedPreferences(sentence_length=SentenceLength.MEDIUM, difficulty=Difficulty.C3)
    assert build_prompt(resolved) == build_prompt(resolved)


def test_full_prompt_wraps_instructions():
    full = build_full_prompt(Preferences(sentence_length="short", difficulty="A2"))
    assert full.startswith(SYSTEM_PREAMBLE)
    assert full.endswith(JSON_ONLY_SUFFIX)


def test_normalize_preferences_cleans_topics():
    preferences = normalize_preferences({
        "topics": [" 旅遊 ", "", "旅遊", "購物"],
        "sentenceLength": "",
        "difficulty": "B2",
        "customSentence": "  ",
    })
    assert preferences.topics == ["旅遊", "購物"]
    assert preferences.sentence_length is None
    assert preferences.difficulty == Difficulty.B2
    assert preferences.custom_sentence is None


@pytest.mark.parametrize("payload", [
    None,
    "short",
    [1, 2],
    {"difficulty": "Z9"},
    {"sentenceLength": "huge"},
    {"topics": "旅遊"},
])
def test_malformed_preferences_raise(payload):
    with pytest.raises(PreferenceFormatError):
        normalize_preferences(payload)


def test_effective_topics_include_custom_sentence_once():
    resolved = resolve_preferences(
        Preferences(topics=["科技"], custom_sentence="科技", sentence_length="short", difficulty="A1")
    )
    assert resolved.effective_topics == ["科技"]
