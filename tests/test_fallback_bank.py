import itertools

import pytest

from dictation.agents.fallback_bank import (
    LAST_RESORT_EXERCISE,
    STATIC_EXERCISES,
    FallbackBank,
    nearest_difficulties,
)
from dictation.agents.response_parser import validate_exercise_data
from dictation.api.schemas.exercise_schemas import Difficulty, SentenceLength


@pytest.fixture
def bank():
    return FallbackBank()


@pytest.mark.parametrize("sentence_length, difficulty", list(itertools.product(SentenceLength, Difficulty)))
def test_every_combination_returns_valid_exercise(bank, sentence_length, difficulty):
    exercise = bank.lookup(sentence_length, difficulty)

    # 备用题同样必须通过结构检查
    validate_exercise_data(exercise.model_dump(by_alias=True))
    assert exercise.chunks[-1] == exercise.sentence


@pytest.mark.parametrize("key", list(STATIC_EXERCISES))
def test_static_chunks_grow_from_sentence_end(key):
    exercise = STATIC_EXERCISES[key]
    for smaller, larger in zip(exercise.chunks, exercise.chunks[1:]):
        assert larger.endswith(smaller)
        assert len(larger) > len(smaller)
    assert exercise.sentence.endswith(exercise.chunks[0])


def test_exact_match(bank):
    exercise = bank.lookup(SentenceLength.SHORT, Difficulty.A1)
    assert exercise.sentence == "I drink milk every morning"


def test_accepts_plain_strings(bank):
    assert bank.lookup("medium", "A2").sentence == "I usually take the bus to school when it rains"


def test_nearest_difficulty_within_same_length(bank):
    # short 最高只有 B2
    assert bank.lookup(SentenceLength.SHORT, Difficulty.C3) == STATIC_EXERCISES[(SentenceLength.SHORT, Difficulty.B2)]
    # long 最低只有 B1
    assert bank.lookup(SentenceLength.LONG, Difficulty.A1) == STATIC_EXERCISES[(SentenceLength.LONG, Difficulty.B1)]
    assert bank.lookup(SentenceLength.MEDIUM, Difficulty.A1) == STATIC_EXERCISES[(SentenceLength.MEDIUM, Difficulty.A2)]


def test_lower_difficulty_is_preferred_on_tie():
    low = STATIC_EXERCISES[(SentenceLength.SHORT, Difficulty.A1)]
    high = STATIC_EXERCISES[(SentenceLength.SHORT, Difficulty.B1)]
    bank = FallbackBank({
        (SentenceLength.SHORT, Difficulty.A1): low,
        (SentenceLength.SHORT, Difficulty.B1): high,
    })
    assert bank.lookup(SentenceLength.SHORT, Difficulty.A2) == low


def test_falls_back_to_other_lengths_in_order():
    medium = STATIC_EXERCISES[(SentenceLength.MEDIUM, Difficulty.B1)]
    short = STATIC_EXERCISES[(SentenceLength.SHORT, Difficulty.B1)]
    bank = FallbackBank({
        (SentenceLength.MEDIUM, Difficulty.B1): medium,
        (SentenceLength.SHORT, Difficulty.B1): short,
    })

    assert bank.lookup(SentenceLength.LONG, Difficulty.B1) == medium

    only_long = FallbackBank({(SentenceLength.LONG, Difficulty.C1): STATIC_EXERCISES[(SentenceLength.LONG, Difficulty.C1)]})
    assert only_long.lookup(SentenceLength.SHORT, Difficulty.A1).sentence.startswith("Had the engineers")


def test_empty_bank_returns_last_resort():
    exercise = FallbackBank({}).lookup(SentenceLength.MEDIUM, Difficulty.B2)
    assert exercise == LAST_RESORT_EXERCISE
    assert exercise.sentence == "Practice makes perfect"


def test_returned_exercise_is_a_copy(bank):
    exercise = bank.lookup(SentenceLength.SHORT, Difficulty.A1)
    exercise.chunks.append("changed")
    exercise.word_meanings["changed"] = "改變 (動詞)"

    again = bank.lookup(SentenceLength.SHORT, Difficulty.A1)
    assert "changed" not in again.chunks
    assert "changed" not in again.word_meanings


def test_nearest_difficulties_expand_outward():
    assert list(nearest_difficulties(Difficulty.B1)) == [
        Difficulty.B1, Difficulty.A2, Difficulty.B2, Difficulty.A1,
        Difficulty.C1, Difficulty.C2, Difficulty.C3,
    ]
    assert list(nearest_difficulties(Difficulty.A1)) == list(Difficulty)
    assert list(nearest_difficulties(Difficulty.C3)) == list(reversed(list(Difficulty)))
