#!/usr/bin/env python3
"""
批量生成题目并写入题库

按 难度 × 长度 × 主题组 逐一调用大模型，通过结构检查的题目保存到题库，
大模型返回配额用尽时提前结束。模拟客户端的题目与难度、长度无关，只统计不保存。

用法: python3 -m scripts.seed_exercises --per-combination 5
"""
import argparse
import asyncio
import logging
import sys

from dictation.agents.preferences import DIFFICULTY_ORDER, SENTENCE_LENGTHS, ResolvedPreferences
from dictation.agents.prompt_templates import build_full_prompt
from dictation.agents.response_parser import parse_exercise_response
from dictation.repositories.exercise_repository import ExerciseRepository
from dictation.utils.database import get_db_session, init_db
from dictation.utils.exceptions import DictationError, QuotaExceededError, StoreError
from dictation.utils.llm_client import MockLLMClient, create_llm_client
from dictation.utils.logger import setup_logging

logger = logging.getLogger("scripts.seed_exercises")

TOPIC_GROUPS = [
    ["旅遊"],
    ["餐廳"],
    ["商務"],
    ["日常生活"],
    ["情緒表達"],
    ["購物"],
    ["健康醫療"],
    ["科技"],
]


async def seed(per_combination: int, delay: float, use_mock: bool) -> int:
    init_db()
    llm_client = create_llm_client(use_mock=use_mock)
    persist = not isinstance(llm_client, MockLLMClient)
    db = get_db_session()
    repo = ExerciseRepository(db)

    total_generated = total_saved = total_skipped = 0
    try:
        for difficulty in DIFFICULTY_ORDER:
            for sentence_length in SENTENCE_LENGTHS:
                for topics in TOPIC_GROUPS:
                    combination = f"{difficulty.value}-{sentence_length.value}-{','.join(topics)}"
                    preferences = ResolvedPreferences(
                        sentence_length=sentence_length,
                        difficulty=difficulty,
                        topics=tuple(topics),
                    )
                    generated = saved = skipped = 0

                    for _ in range(per_combination):
                        try:
                            raw_text = await llm_client.generate_exercise_text(build_full_prompt(preferences))
                            exercise = parse_exercise_response(raw_text)
                        except QuotaExceededError as e:
                            print(f"\n配額已用完，停止生成: {e.message}")
                            total_generated += generated
                            total_saved += saved
                            total_skipped += skipped
                            return total_saved
                        except DictationError as e:
                            logger.warning(f"{combination} 生成失敗: {e}")
                            continue

                        generated += 1
                        if not persist:
                            skipped += 1
                        else:
                            try:
                                if repo.save(exercise, preferences):
                                    saved += 1
                                else:
                                    skipped += 1
                            except StoreError as e:
                                logger.error(f"{combination} 保存失败: {e}")
                                skipped += 1
                        await asyncio.sleep(delay)

                    total_generated += generated
                    total_saved += saved
                    total_skipped += skipped
                    print(f"✓ {combination}: 生成 {generated}, 儲存 {saved}, 跳過 {skipped}")
    finally:
        print("\n=== 完成統計 ===")
        print(f"總生成: {total_generated}")
        print(f"總儲存: {total_saved}")
        print(f"總跳過: {total_skipped}")

        print("\n=== 題庫統計 ===")
        for key, count in sorted(repo.get_stats().items()):
            print(f"{key}: {count} 題")
        db.close()

    return total_saved


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="批量生成题目并写入题库")
    parser.add_argument("--per-combination", type=int, default=20,
                        help="每个难度/长度/主题组合请求的题目数")
    parser.add_argument("--delay", type=float, default=0.3,
                        help="两次请求之间等待的秒数")
    parser.add_argument("--mock", action="store_true", help="使用模拟LLM客户端（不写入题库）")
    args = parser.parse_args(argv)

    setup_logging()
    asyncio.run(seed(args.per_combination, args.delay, args.mock))
    return 0


if __name__ == "__main__":
    sys.exit(main())
