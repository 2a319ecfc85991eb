import random
from typing import Dict, Optional, Union

from dictation.agents.preferences import ResolvedPreferences, resolve_preferences
from dictation.api.schemas.exercise_schemas import Difficulty, Preferences, SentenceLength

LENGTH_GUIDELINES: Dict[SentenceLength, Dict[str, str]] = {
    SentenceLength.SHORT: {
        "range": "5-8",
        "description": "Short: 5-8 words, simple structure, one clear idea",
    },
    SentenceLength.MEDIUM: {
        "range": "10-15",
        "description": "Medium: 10-15 words, moderate complexity, can include one subordinate clause",
    },
    SentenceLength.LONG: {
        "range": "18-25",
        "description": "Long: 18-25 words, complex structure with multiple clauses",
    },
}

DIFFICULTY_GUIDELINES: Dict[Difficulty, str] = {
    Difficulty.A1: "A1 (Beginner): Basic vocabulary, simple tenses, no complex grammar",
    Difficulty.A2: "A2 (Elementary): Common vocabulary, basic tenses, simple conjunctions",
    Difficulty.B1: "B1 (Intermediate): Varied vocabulary, multiple tenses, subordinate clauses",
    Difficulty.B2: "B2 (Upper-Intermediate): Advanced vocabulary, complex grammar, multiple clauses",
    Difficulty.C1: "C1 (Advanced): Very advanced vocabulary, sophisticated structures, academic language",
    Difficulty.C2: "C2 (Proficiency): Native-level vocabulary, highly complex structures, professional language",
    Difficulty.C3: "C3 (Mastery): Very advanced but PRACTICAL vocabulary, sophisticated structures, avoid overly formal/academic jargon",
}

SYSTEM_PREAMBLE = "You are an English teacher. Create a typing practice exercise."
JSON_ONLY_SUFFIX = "Return ONLY valid JSON, no markdown or explanations."

RESPONSE_FORMAT = """Response format (JSON only, no markdown):

{
  "sentence": "完整英文句子",
  "chunks": ["最小片段", "中等片段", "完整句子"],
  "translation": "完整繁體中文翻譯",
  "chunkTranslations": ["片段1翻譯", "片段2翻譯", "片段3翻譯"],
  "wordMeanings": {
    "word": "中文意思 (詞性)"
  }
}"""

CHUNK_RULES = """Rules:
- chunks: progressive from small to large, starting from the END of the sentence
- each chunk is a contiguous span of words that ends at the last word of the sentence, and each chunk extends the previous one toward the beginning
- the last chunk MUST be exactly the full sentence
- chunkTranslations: same number of items as chunks, in the same order
- wordMeanings: include EVERY word of the sentence, format "中文 (詞性)"
- 詞性: 名詞/動詞/形容詞/副詞/代名詞/介系詞/冠詞/連接詞"""


def build_topic_directive(preferences: ResolvedPreferences) -> str:
    topics = preferences.effective_topics
    if topics:
        return f"topics: {', '.join(topics)}"
    return "any common topic"


def build_prompt(preferences: Union[Preferences, ResolvedPreferences],
                 rng: Optional[random.Random] = None) -> str:
    """
    根据出题条件生成给大模型的指令文本

    Args:
        preferences: 出题条件，未选择的长度/难度会被随机确定
        rng: 随机数来源（测试时注入）

    Returns:
        str: 指令文本，只生成文字，不调用模型
    """
    if not isinstance(preferences, ResolvedPreferences):
        preferences = resolve_preferences(preferences, rng)

    length_guideline = LENGTH_GUIDELINES[preferences.sentence_length]
    difficulty = preferences.difficulty
    difficulty_guideline = DIFFICULTY_GUIDELINES[difficulty]

    return f"""Create an English typing practice exercise.

Requirements:
- Difficulty: {difficulty_guideline}
- Length: {length_guideline["description"]} (EXACTLY {length_guideline["range"]} words)
- Topics: {build_topic_directive(preferences)}
- Use PRACTICAL and NATURAL English for {difficulty.value} level
- Create a UNIQUE sentence each time, vary the subject, vocabulary and structure between calls

{RESPONSE_FORMAT}

{CHUNK_RULES}"""


def build_full_prompt(preferences: Union[Preferences, ResolvedPreferences],
                      rng: Optional[random.Random] = None) -> str:
    """加上角色说明与只返回JSON的要求，作为最终发送的内容"""
    return f"{SYSTEM_PREAMBLE}\n\n{build_prompt(preferences, rng)}\n\n{JSON_ONLY_SUFFIX}"
