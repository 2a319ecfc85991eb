import logging
from typing import Dict, Iterator, List, Optional, Tuple

from dictation.agents.preferences import DIFFICULTY_ORDER
from dictation.api.schemas.exercise_schemas import Difficulty, Exercise, SentenceLength

logger = logging.getLogger(__name__)

"""
静态备用题库
大模型配额用完且题库中也没有题目时使用，每个 (长度, 难度) 最多一题，并非所有组合都有题目。
"""

BankKey = Tuple[SentenceLength, Difficulty]

# 找不到同长度题目时，依次尝试的长度
LENGTH_FALLBACK_ORDER: List[SentenceLength] = [
    SentenceLength.MEDIUM,
    SentenceLength.SHORT,
    SentenceLength.LONG,
]

STATIC_EXERCISES: Dict[BankKey, Exercise] = {
    (SentenceLength.SHORT, Difficulty.A1): Exercise(
        sentence="I drink milk every morning",
        chunks=["every morning", "drink milk every morning", "I drink milk every morning"],
        translation="我每天早上喝牛奶",
        chunk_translations=["每天早上", "每天早上喝牛奶", "我每天早上喝牛奶"],
        word_meanings={
            "I": "我 (代名詞)",
            "drink": "喝 (動詞)",
            "milk": "牛奶 (名詞)",
            "every": "每一個 (形容詞)",
            "morning": "早上 (名詞)",
        },
    ),
    (SentenceLength.SHORT, Difficulty.A2): Exercise(
        sentence="My sister works at a small bakery",
        chunks=["a small bakery", "works at a small bakery", "My sister works at a small bakery"],
        translation="我姊姊在一間小麵包店工作",
        chunk_translations=["一間小麵包店", "在一間小麵包店工作", "我姊姊在一間小麵包店工作"],
        word_meanings={
            "My": "我的 (代名詞)",
            "sister": "姊妹 (名詞)",
            "works": "工作 (動詞)",
            "at": "在 (介系詞)",
            "a": "一個 (冠詞)",
            "small": "小的 (形容詞)",
            "bakery": "麵包店 (名詞)",
        },
    ),
    (SentenceLength.SHORT, Difficulty.B1): Exercise(
        sentence="We postponed the trip because of rain",
        chunks=["because of rain", "the trip because of rain", "We postponed the trip because of rain"],
        translation="我們因為下雨延後了旅行",
        chunk_translations=["因為下雨", "因為下雨的旅行", "我們因為下雨延後了旅行"],
        word_meanings={
            "We": "我們 (代名詞)",
            "postponed": "延後 (動詞)",
            "the": "這個 (冠詞)",
            "trip": "旅行 (名詞)",
            "because": "因為 (連接詞)",
            "of": "…的 (介系詞)",
            "rain": "雨 (名詞)",
        },
    ),
    (SentenceLength.SHORT, Difficulty.B2): Exercise(
        sentence="Her proposal received unexpectedly strong support",
        chunks=[
            "strong support",
            "received unexpectedly strong support",
            "Her proposal received unexpectedly strong support",
        ],
        translation="她的提案獲得出乎意料的強力支持",
        chunk_translations=["強力的支持", "獲得出乎意料的強力支持", "她的提案獲得出乎意料的強力支持"],
        word_meanings={
            "Her": "她的 (代名詞)",
            "proposal": "提案 (名詞)",
            "received": "獲得 (動詞)",
            "unexpectedly": "出乎意料地 (副詞)",
            "strong": "強力的 (形容詞)",
            "support": "支持 (名詞)",
        },
    ),
    (SentenceLength.MEDIUM, Difficulty.A2): Exercise(
        sentence="I usually take the bus to school when it rains",
        chunks=[
            "when it rains",
            "to school when it rains",
            "take the bus to school when it rains",
            "I usually take the bus to school when it rains",
        ],
        translation="下雨的時候我通常搭公車去學校",
        chunk_translations=[
            "下雨的時候",
            "下雨的時候去學校",
            "下雨的時候搭公車去學校",
            "下雨的時候我通常搭公車去學校",
        ],
        word_meanings={
            "I": "我 (代名詞)",
            "usually": "通常 (副詞)",
            "take": "搭乘 (動詞)",
            "the": "這個 (冠詞)",
            "bus": "公車 (名詞)",
            "to": "到 (介系詞)",
            "school": "學校 (名詞)",
            "when": "當…時 (連接詞)",
            "it": "它 (代名詞)",
            "rains": "下雨 (動詞)",
        },
    ),
    (SentenceLength.MEDIUM, Difficulty.B1): Exercise(
        sentence="My friends and I are planning a picnic if the weather stays nice",
        chunks=[
            "if the weather stays nice",
            "a picnic if the weather stays nice",
            "are planning a picnic if the weather stays nice",
            "My friends and I are planning a picnic if the weather stays nice",
        ],
        translation="如果天氣持續晴朗，我和朋友們打算去野餐",
        chunk_translations=[
            "如果天氣持續晴朗",
            "如果天氣持續晴朗就去野餐",
            "正在計畫如果天氣持續晴朗就去野餐",
            "如果天氣持續晴朗，我和朋友們打算去野餐",
        ],
        word_meanings={
            "My": "我的 (代名詞)",
            "friends": "朋友們 (名詞)",
            "and": "和 (連接詞)",
            "I": "我 (代名詞)",
            "are": "是 (動詞)",
            "planning": "計畫 (動詞)",
            "a": "一個 (冠詞)",
            "picnic": "野餐 (名詞)",
            "if": "如果 (連接詞)",
            "the": "這個 (冠詞)",
            "weather": "天氣 (名詞)",
            "stays": "保持 (動詞)",
            "nice": "好的 (形容詞)",
        },
    ),
    (SentenceLength.MEDIUM, Difficulty.B2): Exercise(
        sentence="The manager insisted that every report be submitted before Friday afternoon",
        chunks=[
            "before Friday afternoon",
            "be submitted before Friday afternoon",
            "that every report be submitted before Friday afternoon",
            "The manager insisted that every report be submitted before Friday afternoon",
        ],
        translation="經理堅持每份報告都要在週五下午之前提交",
        chunk_translations=[
            "週五下午之前",
            "在週五下午之前提交",
            "每份報告都要在週五下午之前提交",
            "經理堅持每份報告都要在週五下午之前提交",
        ],
        word_meanings={
            "The": "這個 (冠詞)",
            "manager": "經理 (名詞)",
            "insisted": "堅持 (動詞)",
            "that": "那個 (連接詞)",
            "every": "每一個 (形容詞)",
            "report": "報告 (名詞)",
            "be": "是 (動詞)",
            "submitted": "提交 (動詞)",
            "before": "在…之前 (介系詞)",
            "Friday": "星期五 (名詞)",
            "afternoon": "下午 (名詞)",
        },
    ),
    (SentenceLength.MEDIUM, Difficulty.C1): Exercise(
        sentence="Despite mounting pressure the committee refused to disclose its preliminary findings",
        chunks=[
            "its preliminary findings",
            "refused to disclose its preliminary findings",
            "the committee refused to disclose its preliminary findings",
            "Despite mounting pressure the committee refused to disclose its preliminary findings",
        ],
        translation="儘管壓力越來越大，委員會仍拒絕公開其初步調查結果",
        chunk_translations=[
            "它的初步調查結果",
            "拒絕公開它的初步調查結果",
            "委員會拒絕公開它的初步調查結果",
            "儘管壓力越來越大，委員會仍拒絕公開其初步調查結果",
        ],
        word_meanings={
            "Despite": "儘管 (介系詞)",
            "mounting": "越來越多的 (形容詞)",
            "pressure": "壓力 (名詞)",
            "the": "這個 (冠詞)",
            "committee": "委員會 (名詞)",
            "refused": "拒絕 (動詞)",
            "to": "去 (介系詞)",
            "disclose": "公開 (動詞)",
            "its": "它的 (代名詞)",
            "preliminary": "初步的 (形容詞)",
            "findings": "調查結果 (名詞)",
        },
    ),
    (SentenceLength.LONG, Difficulty.B1): Exercise(
        sentence="When I moved to a new city last year I joined a running club so that I could meet people",
        chunks=[
            "meet people",
            "so that I could meet people",
            "I joined a running club so that I could meet people",
            "When I moved to a new city last year I joined a running club so that I could meet people",
        ],
        translation="去年我搬到一個新城市時，加入了一個跑步社團，這樣我才能認識新朋友",
        chunk_translations=[
            "認識人",
            "這樣我才能認識人",
            "我加入了一個跑步社團，這樣我才能認識人",
            "去年我搬到一個新城市時，加入了一個跑步社團，這樣我才能認識新朋友",
        ],
        word_meanings={
            "When": "當…時 (連接詞)",
            "I": "我 (代名詞)",
            "moved": "搬家 (動詞)",
            "to": "到 (介系詞)",
            "a": "一個 (冠詞)",
            "new": "新的 (形容詞)",
            "city": "城市 (名詞)",
            "last": "上一個 (形容詞)",
            "year": "年 (名詞)",
            "joined": "加入 (動詞)",
            "running": "跑步的 (形容詞)",
            "club": "社團 (名詞)",
            "so": "所以 (連接詞)",
            "that": "以便 (連接詞)",
            "could": "能夠 (動詞)",
            "meet": "認識 (動詞)",
            "people": "人們 (名詞)",
        },
    ),
    (SentenceLength.LONG, Difficulty.B2): Exercise(
        sentence="Although the hotel was fully booked the receptionist managed to find us a quiet room that overlooked the harbor",
        chunks=[
            "the harbor",
            "a quiet room that overlooked the harbor",
            "the receptionist managed to find us a quiet room that overlooked the harbor",
            "Although the hotel was fully booked the receptionist managed to find us a quiet room that overlooked the harbor",
        ],
        translation="雖然飯店已經客滿，櫃檯人員還是設法幫我們找到一間可以俯瞰港口的安靜房間",
        chunk_translations=[
            "港口",
            "一間可以俯瞰港口的安靜房間",
            "櫃檯人員設法幫我們找到一間可以俯瞰港口的安靜房間",
            "雖然飯店已經客滿，櫃檯人員還是設法幫我們找到一間可以俯瞰港口的安靜房間",
        ],
        word_meanings={
            "Although": "雖然 (連接詞)",
            "the": "這個 (冠詞)",
            "hotel": "飯店 (名詞)",
            "was": "是 (動詞)",
            "fully": "完全地 (副詞)",
            "booked": "預訂 (動詞)",
            "receptionist": "櫃檯人員 (名詞)",
            "managed": "設法做到 (動詞)",
            "to": "去 (介系詞)",
            "find": "找到 (動詞)",
            "us": "我們 (代名詞)",
            "a": "一個 (冠詞)",
            "quiet": "安靜的 (形容詞)",
            "room": "房間 (名詞)",
            "that": "那個 (代名詞)",
            "overlooked": "俯瞰 (動詞)",
            "harbor": "港口 (名詞)",
        },
    ),
    (SentenceLength.LONG, Difficulty.C1): Exercise(
        sentence="Had the engineers anticipated the surge in demand they would have expanded the network long before customers started complaining about outages",
        chunks=[
            "about outages",
            "before customers started complaining about outages",
            "they would have expanded the network long before customers started complaining about outages",
            "Had the engineers anticipated the surge in demand they would have expanded the network long before customers started complaining about outages",
        ],
        translation="如果工程師們早預料到需求激增，他們早在顧客開始抱怨斷線之前就會擴充網路",
        chunk_translations=[
            "關於斷線",
            "在顧客開始抱怨斷線之前",
            "他們早在顧客開始抱怨斷線之前就會擴充網路",
            "如果工程師們早預料到需求激增，他們早在顧客開始抱怨斷線之前就會擴充網路",
        ],
        word_meanings={
            "Had": "已經 (動詞)",
            "the": "這個 (冠詞)",
            "engineers": "工程師們 (名詞)",
            "anticipated": "預料 (動詞)",
            "surge": "激增 (名詞)",
            "in": "在…方面 (介系詞)",
            "demand": "需求 (名詞)",
            "they": "他們 (代名詞)",
            "would": "將會 (動詞)",
            "have": "已經 (動詞)",
            "expanded": "擴充 (動詞)",
            "network": "網路 (名詞)",
            "long": "很久 (副詞)",
            "before": "在…之前 (連接詞)",
            "customers": "顧客們 (名詞)",
            "started": "開始 (動詞)",
            "complaining": "抱怨 (動詞)",
            "about": "關於 (介系詞)",
            "outages": "斷線 (名詞)",
        },
    ),
}

# 题库为空时的最后一道题
LAST_RESORT_EXERCISE = Exercise(
    sentence="Practice makes perfect",
    chunks=["perfect", "makes perfect", "Practice makes perfect"],
    translation="熟能生巧",
    chunk_translations=["完美", "造就完美", "熟能生巧"],
    word_meanings={
        "Practice": "練習 (名詞)",
        "makes": "造就 (動詞)",
        "perfect": "完美的 (形容詞)",
    },
)


def nearest_difficulties(difficulty: Difficulty) -> Iterator[Difficulty]:
    """从指定难度开始向两侧展开：本身、低一级、高一级、低两级、高两级……"""
    index = DIFFICULTY_ORDER.index(difficulty)
    yield difficulty
    for step in range(1, len(DIFFICULTY_ORDER)):
        if index - step >= 0:
            yield DIFFICULTY_ORDER[index - step]
        if index + step < len(DIFFICULTY_ORDER):
            yield DIFFICULTY_ORDER[index + step]


class FallbackBank:
    """静态备用题库，查询一定会返回一道题"""

    def __init__(self, exercises: Optional[Dict[BankKey, Exercise]] = None,
                 last_resort: Exercise = LAST_RESORT_EXERCISE):
        self.exercises = STATIC_EXERCISES if exercises is None else exercises
        self.last_resort = last_resort

    def _search_length(self, sentence_length: SentenceLength, difficulty: Difficulty) -> Optional[Exercise]:
        for candidate in nearest_difficulties(difficulty):
            exercise = self.exercises.get((sentence_length, candidate))
            if exercise is not None:
                if candidate != difficulty:
                    logger.info(f"备用题库无 {sentence_length.value}/{difficulty.value}，使用 {candidate.value}")
                return exercise
        return None

    def lookup(self, sentence_length: SentenceLength, difficulty: Difficulty) -> Exercise:
        """
        按长度和难度查找备用题

        查找顺序：完全匹配 → 同长度最接近的难度 → 按 medium、short、long
        依次换长度再找 → 固定的最后一题。

        Returns:
            Exercise: 题目副本，调用方可以随意修改
        """
        sentence_length = SentenceLength(sentence_length)
        difficulty = Difficulty(difficulty)

        exercise = self._search_length(sentence_length, difficulty)
        if exercise is None:
            for fallback_length in LENGTH_FALLBACK_ORDER:
                if fallback_length == sentence_length:
                    continue
                exercise = self._search_length(fallback_length, difficulty)
                if exercise is not None:
                    logger.info(f"备用题库改用长度 {fallback_length.value}")
                    break

        if exercise is None:
            logger.warning("备用题库没有可用题目，返回固定题目")
            exercise = self.last_resort

        return exercise.model_copy(deep=True)
