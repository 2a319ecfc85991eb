import logging
import random
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from dictation.api.schemas.exercise_schemas import Difficulty, Preferences, SentenceLength
from dictation.utils.exceptions import PreferenceFormatError

logger = logging.getLogger(__name__)

# 由易到难
DIFFICULTY_ORDER: List[Difficulty] = list(Difficulty)
SENTENCE_LENGTHS: List[SentenceLength] = list(SentenceLength)


@dataclass(frozen=True)
class ResolvedPreferences:
    """长度和难度都已确定的出题条件"""
    sentence_length: SentenceLength
    difficulty: Difficulty
    topics: Tuple[str, ...] = field(default_factory=tuple)
    custom_sentence: Optional[str] = None

    @property
    def effective_topics(self) -> List[str]:
        """主题加上自订题目，去重后的主题集合"""
        merged = list(self.topics)
        if self.custom_sentence and self.custom_sentence not in merged:
            merged.append(self.custom_sentence)
        return merged


def normalize_preferences(payload: Any) -> Preferences:
    """
    将请求内容转换为 Preferences

    Args:
        payload: 已解码的请求JSON

    Returns:
        Preferences: 主题已清理（去空白、去空串、去重）的偏好设定

    Raises:
        PreferenceFormatError: 不是对象或字段类型不符
    """
    if isinstance(payload, Preferences):
        preferences = payload
    else:
        if not isinstance(payload, dict):
            raise PreferenceFormatError("無效的偏好設定格式")
        try:
            preferences = Preferences.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning(f"偏好设定格式错误: {e.errors()}")
            raise PreferenceFormatError("無效的偏好設定格式") from e

    topics = []
    for topic in preferences.topics:
        cleaned = topic.strip()
        if cleaned and cleaned not in topics:
            topics.append(cleaned)

    custom = preferences.custom_sentence.strip() if preferences.custom_sentence else None

    return preferences.model_copy(update={"topics": topics, "custom_sentence": custom or None})


def resolve_preferences(preferences: Preferences, rng: Optional[random.Random] = None) -> ResolvedPreferences:
    """未选择的长度、难度以均匀随机方式确定"""
    rng = rng or random
    preferences = normalize_preferences(preferences)

    sentence_length = preferences.sentence_length or rng.choice(SENTENCE_LENGTHS)
    difficulty = preferences.difficulty or rng.choice(DIFFICULTY_ORDER)

    return ResolvedPreferences(
        sentence_length=SentenceLength(sentence_length),
        difficulty=Difficulty(difficulty),
        topics=tuple(preferences.topics),
        custom_sentence=preferences.custom_sentence,
    )
