import json

from sqlalchemy import Column, String, Integer, Text, UniqueConstraint, Index
from .base import BaseModel

from dictation.api.schemas.exercise_schemas import Exercise

"""
题目模型
大模型生成并通过结构检查的题目，同一难度、长度下句子不重复。
除 used_count 外，记录建立后不再修改，也不会删除。
"""
class ExerciseRecord(BaseModel):
    __tablename__ = "exercises"
    __table_args__ = (
        UniqueConstraint("sentence", "difficulty", "sentence_length", name="uq_exercise_sentence_bucket"),
        Index("idx_difficulty_length", "difficulty", "sentence_length"),
        Index("idx_used_count", "used_count"),
    )

    sentence = Column(Text, nullable=False)
    chunks = Column(Text, nullable=False)
    translation = Column(Text, nullable=False)
    chunk_translations = Column(Text, nullable=False)
    word_meanings = Column(Text, nullable=False)
    difficulty = Column(String(10), nullable=False)
    sentence_length = Column(String(20), nullable=False)
    topics = Column(Text, nullable=False, default="[]")
    used_count = Column(Integer, nullable=False, default=0)

    def to_exercise(self) -> Exercise:
        return Exercise(
            sentence=self.sentence,
            chunks=json.loads(self.chunks),
            translation=self.translation,
            chunk_translations=json.loads(self.chunk_translations),
            word_meanings=json.loads(self.word_meanings),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "sentence": self.sentence,
            "difficulty": self.difficulty,
            "sentence_length": self.sentence_length,
            "topics": json.loads(self.topics or "[]"),
            "used_count": self.used_count,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }
