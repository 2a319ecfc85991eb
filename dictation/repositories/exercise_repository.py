import json
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dictation.agents.preferences import ResolvedPreferences
from dictation.api.schemas.exercise_schemas import Difficulty, Exercise, SentenceLength
from dictation.models.exercise import ExerciseRecord
from dictation.repositories.base import BaseRepository
from dictation.utils.database import SessionLocal
from dictation.utils.exceptions import StoreError

logger = logging.getLogger(__name__)


def _value(enum_or_str) -> str:
    return enum_or_str.value if hasattr(enum_or_str, "value") else str(enum_or_str)


class ExerciseRepository(BaseRepository[ExerciseRecord]):
    """
    题库Repository类，题目的查找、去重检查、保存与使用次数统计

    所有数据库错误都转换为 StoreError，由服务层决定如何处理。
    """

    def __init__(self, db: Session):
        """
        初始化ExerciseRepository

        Args:
            db: SQLAlchemy会话对象
        """
        super().__init__(db, ExerciseRecord)

    def find_one_by_difficulty_and_length(self, difficulty: Difficulty,
                                          sentence_length: SentenceLength) -> Optional[ExerciseRecord]:
        """
        取出指定难度和长度下使用次数最少的一题，次数相同时随机

        主题不参与筛选。

        Returns:
            Optional[ExerciseRecord]: 题目记录，没有时返回None
        """
        try:
            return self.db.query(ExerciseRecord).filter(
                ExerciseRecord.difficulty == _value(difficulty),
                ExerciseRecord.sentence_length == _value(sentence_length),
            ).order_by(
                ExerciseRecord.used_count.asc(),
                func.random(),
            ).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"查询题目失败: {e}") from e

    def exists_by_sentence(self, sentence: str, difficulty: Difficulty,
                           sentence_length: SentenceLength) -> bool:
        """同一难度、长度下是否已有相同句子"""
        try:
            existing = self.get_first_by(
                sentence=sentence,
                difficulty=_value(difficulty),
                sentence_length=_value(sentence_length),
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"检查题目是否存在失败: {e}") from e
        return existing is not None

    def save(self, exercise: Exercise, preferences: ResolvedPreferences) -> bool:
        """
        保存题目

        Args:
            exercise: 通过结构检查的题目
            preferences: 已确定长度和难度的出题条件

        Returns:
            bool: 是否新增成功，违反唯一约束（重复题目）时返回False
        """
        try:
            self.create(
                sentence=exercise.sentence,
                chunks=json.dumps(exercise.chunks, ensure_ascii=False),
                translation=exercise.translation,
                chunk_translations=json.dumps(exercise.chunk_translations, ensure_ascii=False),
                word_meanings=json.dumps(exercise.word_meanings, ensure_ascii=False),
                difficulty=_value(preferences.difficulty),
                sentence_length=_value(preferences.sentence_length),
                topics=json.dumps(preferences.effective_topics, ensure_ascii=False),
                used_count=0,
            )
            return True
        except IntegrityError:
            self.db.rollback()
            logger.info(f"题目已存在，跳过保存: {exercise.sentence}")
            return False
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"保存题目失败: {e}") from e

    def increment_usage(self, exercise_id: int) -> None:
        """使用次数加一"""
        try:
            self.db.query(ExerciseRecord).filter(ExerciseRecord.id == exercise_id).update(
                {ExerciseRecord.used_count: ExerciseRecord.used_count + 1},
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"更新使用次数失败: {e}") from e

    def get_stats(self) -> Dict[str, int]:
        """
        各难度、长度组合的题目数量

        Returns:
            Dict[str, int]: 键为 "难度-长度"，例如 {"A1-short": 12}
        """
        try:
            rows = self.db.query(
                ExerciseRecord.difficulty,
                ExerciseRecord.sentence_length,
                func.count(ExerciseRecord.id),
            ).group_by(ExerciseRecord.difficulty, ExerciseRecord.sentence_length).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"获取统计失败: {e}") from e
        return {f"{difficulty}-{sentence_length}": count for difficulty, sentence_length, count in rows}


@contextmanager
def exercise_store_scope(session_factory=SessionLocal) -> Iterator[ExerciseRepository]:
    """
    为一次题库操作打开独立的数据库会话

    后台保存在线程池中执行，不与请求共用会话。
    """
    db = session_factory()
    try:
        yield ExerciseRepository(db)
    finally:
        db.close()
