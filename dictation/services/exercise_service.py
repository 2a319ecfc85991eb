import asyncio
import logging
import random
from typing import Callable, ContextManager, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from dictation.agents.fallback_bank import FallbackBank
from dictation.agents.preferences import ResolvedPreferences, resolve_preferences
from dictation.agents.prompt_templates import build_full_prompt
from dictation.agents.response_parser import parse_exercise_response
from dictation.api.schemas.exercise_schemas import Exercise, Preferences
from dictation.repositories.exercise_repository import ExerciseRepository, exercise_store_scope
from dictation.utils.exceptions import QuotaExceededError, StoreError
from dictation.utils.llm_client import LLMClient, MockLLMClient

logger = logging.getLogger(__name__)

StoreFactory = Callable[[], ContextManager[ExerciseRepository]]


class ExerciseService:
    """
    题目服务，负责按以下顺序取得一道题：

    1. 题库中同难度、同长度、使用次数最少的题目
    2. 调用大模型生成并检查结构
    3. 大模型配额用尽时，再查一次题库，仍没有则使用静态备用题库
    4. 新生成的题目在后台去重后保存，不影响本次返回（模拟客户端的题目不保存）
    """

    def __init__(self, llm_client: LLMClient,
                 store_factory: StoreFactory = exercise_store_scope,
                 fallback_bank: Optional[FallbackBank] = None,
                 rng: Optional[random.Random] = None,
                 persist_generated: Optional[bool] = None):
        self.llm_client = llm_client
        self.store_factory = store_factory
        self.fallback_bank = fallback_bank or FallbackBank()
        self.rng = rng or random.Random()
        # 模拟客户端返回的题目与请求的难度、长度无关，不能写入题库
        self.persist_generated = (not isinstance(llm_client, MockLLMClient)
                                  if persist_generated is None else persist_generated)
        self._background_tasks: Set[asyncio.Future] = set()
        logger.info("题目服务初始化完成")

    async def generate(self, preferences: Preferences) -> Exercise:
        """
        取得一道题目

        Args:
            preferences: 使用者的出题条件

        Returns:
            Exercise: 题目

        Raises:
            PreferenceFormatError: 出题条件格式错误
            GenerationTransportError / ParseError / ValidationError: 生成失败
        """
        resolved = resolve_preferences(preferences, self.rng)
        bucket = f"{resolved.difficulty.value}/{resolved.sentence_length.value}"

        exercise = await self._lookup_store(resolved)
        if exercise is not None:
            logger.info(f"从题库取得题目: {bucket}")
            return exercise

        try:
            exercise = await self._generate_with_llm(resolved)
        except QuotaExceededError as e:
            logger.warning(f"大模型配额用尽，改用备用来源: {bucket}, {e.message}")
            return await self._quota_fallback(resolved, e)

        logger.info(f"大模型生成题目: {bucket}, {exercise.sentence}")
        if self.persist_generated:
            self._schedule_persist(exercise, resolved)
        return exercise

    async def _generate_with_llm(self, preferences: ResolvedPreferences) -> Exercise:
        prompt = build_full_prompt(preferences)
        raw_text = await self.llm_client.generate_exercise_text(prompt)
        return parse_exercise_response(raw_text)

    async def _quota_fallback(self, preferences: ResolvedPreferences,
                              quota_error: QuotaExceededError) -> Exercise:
        # 其他请求可能刚保存了新题目
        exercise = await self._lookup_store(preferences)
        if exercise is not None:
            logger.info("配额用尽，重新查询题库取得题目")
            return exercise

        logger.info("配额用尽且题库无题，使用静态备用题库")
        try:
            return self.fallback_bank.lookup(preferences.sentence_length, preferences.difficulty)
        except Exception as e:
            logger.error(f"备用题库查询失败: {e}", exc_info=True)
            raise quota_error from e

    async def _lookup_store(self, preferences: ResolvedPreferences) -> Optional[Exercise]:
        """查询题库，失败时只记录日志并返回None"""
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, self._lookup_store_sync, preferences)
        except (StoreError, SQLAlchemyError) as e:
            logger.error(f"查询题库失败，改为调用大模型: {e}")
            return None

    def _lookup_store_sync(self, preferences: ResolvedPreferences) -> Optional[Exercise]:
        with self.store_factory() as store:
            record = store.find_one_by_difficulty_and_length(
                preferences.difficulty, preferences.sentence_length
            )
            if record is None:
                return None
            try:
                exercise = record.to_exercise()
            except (ValueError, TypeError) as e:
                raise StoreError(f"题目记录 {record.id} 内容无法解析: {e}") from e
            store.increment_usage(record.id)
            return exercise

    def _schedule_persist(self, exercise: Exercise, preferences: ResolvedPreferences) -> None:
        """在线程池中保存题目，不等待结果"""
        loop = asyncio.get_event_loop()
        future = loop.run_in_executor(None, self._persist, exercise.model_copy(deep=True), preferences)
        self._background_tasks.add(future)
        future.add_done_callback(self._background_tasks.discard)

    def _persist(self, exercise: Exercise, preferences: ResolvedPreferences) -> bool:
        try:
            with self.store_factory() as store:
                if store.exists_by_sentence(exercise.sentence, preferences.difficulty,
                                            preferences.sentence_length):
                    logger.info(f"题目已存在，跳过保存: {exercise.sentence}")
                    return False
                saved = store.save(exercise, preferences)
                if saved:
                    logger.info(f"题目已保存: {exercise.sentence}")
                return saved
        except Exception as e:
            logger.error(f"后台保存题目失败: {e}", exc_info=True)
            return False

    @property
    def pending_saves(self) -> int:
        return len(self._background_tasks)

    async def wait_background_tasks(self) -> None:
        """等待所有后台保存完成（测试与关闭时使用）"""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
