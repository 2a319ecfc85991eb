import json
import logging
import re
from typing import Any, Dict

from dictation.api.schemas.exercise_schemas import Exercise
from dictation.utils.exceptions import ParseError, ValidationError

logger = logging.getLogger(__name__)

# 第一个 ```json ... ``` 代码块（json标记可省略）
_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)
# 从第一个 { 到最后一个 }
_BRACES_RE = re.compile(r"\{.*\}", re.DOTALL)


def extract_json_text(raw_text: str) -> str:
    """从模型输出中取出JSON片段"""
    text = (raw_text or "").strip()

    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        return fenced.group(1)

    braces = _BRACES_RE.search(text)
    if braces:
        return braces.group(0)

    return text


def _require_text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"AI回應格式不正確，缺少必要欄位: {key}")
    return value


def _require_string_list(data: Dict[str, Any], key: str) -> list:
    value = data.get(key)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError(f"AI回應格式不正確，{key} 必須是字串陣列")
    return value


def validate_exercise_data(data: Any) -> Exercise:
    """
    检查解码后的题目结构

    只检查形状：必要字段存在且非空、chunkTranslations 与 chunks 数量一致、
    最后一个chunk就是完整句子。字数、语法、翻译质量不在检查范围内。

    Raises:
        ValidationError: 结构不符
    """
    if not isinstance(data, dict):
        raise ValidationError("AI回應格式不正確，頂層必須是物件")

    sentence = _require_text(data, "sentence")
    chunks = _require_string_list(data, "chunks")
    if not chunks:
        raise ValidationError("AI回應格式不正確，缺少必要欄位: chunks")
    _require_text(data, "translation")

    word_meanings = data.get("wordMeanings")
    if not isinstance(word_meanings, dict) or not word_meanings:
        raise ValidationError("AI回應格式不正確，缺少必要欄位: wordMeanings")
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in word_meanings.items()):
        raise ValidationError("AI回應格式不正確，wordMeanings 必須是字串對應")

    if "chunkTranslations" not in data:
        raise ValidationError("AI回應格式不正確，缺少必要欄位: chunkTranslations")
    chunk_translations = _require_string_list(data, "chunkTranslations")
    if len(chunk_translations) != len(chunks):
        raise ValidationError(
            f"AI回應格式不正確，chunkTranslations 數量({len(chunk_translations)})與 chunks 數量({len(chunks)})不一致"
        )

    if chunks[-1].strip() != sentence.strip():
        raise ValidationError("AI回應格式不正確，最後一個 chunk 必須是完整句子")

    return Exercise(
        sentence=sentence,
        chunks=chunks,
        translation=data["translation"],
        chunk_translations=chunk_translations,
        word_meanings=word_meanings,
    )


def parse_exercise_response(raw_text: str) -> Exercise:
    """
    解析大模型返回的文字为题目

    Args:
        raw_text: 模型原始输出，可能包在 ```json 代码块中或前后带有说明文字

    Returns:
        Exercise: 通过结构检查的题目

    Raises:
        ParseError: 找不到JSON或JSON无法解码
        ValidationError: 结构检查失败
    """
    json_text = extract_json_text(raw_text)

    if not json_text or not json_text.startswith("{"):
        logger.warning(f"模型输出中找不到JSON: {(raw_text or '')[:200]}")
        raise ParseError("AI回應格式不正確，無法解析JSON")

    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        logger.warning(f"JSON解码失败: {e}")
        raise ParseError("AI回應格式不正確，無法解析JSON") from e

    return validate_exercise_data(data)
