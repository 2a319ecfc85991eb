import string
from typing import Dict, List, Optional, Sequence

from dictation.api.schemas.exercise_schemas import ValidationResult


def split_into_words(text: str) -> List[str]:
    """将句子按空白拆分为单字"""
    return (text or "").split()


def validate_input(typed_words: Sequence[str], target_words: Sequence[str]) -> List[ValidationResult]:
    """
    逐字比对使用者输入

    每个目标单字都有一个结果；输入不足的位置视为空字串。
    比对忽略大小写与前后空白，空输入一律判为错误。

    Args:
        typed_words: 使用者输入的单字
        target_words: 当前chunk的单字

    Returns:
        List[ValidationResult]: 与 target_words 等长的比对结果
    """
    results = []
    for index, correct_word in enumerate(target_words):
        typed = typed_words[index] if index < len(typed_words) else ""
        typed = typed or ""
        typed_clean = typed.strip().lower()
        is_correct = bool(typed_clean) and typed_clean == (correct_word or "").strip().lower()
        results.append(ValidationResult(
            typed_word=typed,
            is_correct=is_correct,
            correct_word=correct_word,
        ))
    return results


def is_all_correct(results: Sequence[ValidationResult]) -> bool:
    """全部正确且至少有一个结果"""
    return bool(results) and all(result.is_correct for result in results)


def lookup_word_meaning(word_meanings: Dict[str, str], word: str) -> Optional[str]:
    """依次尝试原样、小写、去标点、去标点后小写"""
    stripped = word.strip(string.punctuation)
    for key in (word, word.lower(), stripped, stripped.lower()):
        if key in word_meanings:
            return word_meanings[key]
    return None
