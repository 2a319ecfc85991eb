from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SentenceLength(str, Enum):
    """句子长度"""
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class Difficulty(str, Enum):
    """CEFR 难度等级，按由易到难排列"""
    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"
    C3 = "C3"


class Preferences(BaseModel):
    """使用者选择的出题条件"""
    topics: List[str] = Field(default_factory=list)
    sentence_length: Optional[SentenceLength] = Field(default=None, alias="sentenceLength")
    difficulty: Optional[Difficulty] = None
    custom_sentence: Optional[str] = Field(default=None, alias="customSentence")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("sentence_length", "difficulty", "custom_sentence", mode="before")
    @classmethod
    def _blank_as_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("topics", mode="before")
    @classmethod
    def _topics_as_list(cls, value):
        if value is None:
            return []
        return value


class Exercise(BaseModel):
    """题目：完整句子、由小到大的chunk、翻译及单字解释"""
    sentence: str
    chunks: List[str]
    translation: str
    chunk_translations: List[str] = Field(alias="chunkTranslations")
    word_meanings: Dict[str, str] = Field(alias="wordMeanings")

    model_config = ConfigDict(populate_by_name=True)


class ValidationResult(BaseModel):
    """单个位置的比对结果"""
    typed_word: str = Field(alias="typedWord")
    is_correct: bool = Field(alias="isCorrect")
    correct_word: str = Field(alias="correctWord")

    model_config = ConfigDict(populate_by_name=True)


class ValidateRequest(BaseModel):
    typed_words: List[str] = Field(default_factory=list, alias="typedWords")
    target_words: Optional[List[str]] = Field(default=None, alias="targetWords")
    chunk: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class ValidateResponse(BaseModel):
    results: List[ValidationResult]
    all_correct: bool = Field(alias="allCorrect")

    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    """返回给前端的错误格式"""
    error: str
    type: Optional[str] = None
    retry_after: Optional[str] = Field(default=None, alias="retryAfter")

    model_config = ConfigDict(populate_by_name=True)
