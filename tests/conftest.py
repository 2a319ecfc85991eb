import json
from contextlib import nullcontext
from functools import partial
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dictation.models.base import Base
from dictation.models.exercise import ExerciseRecord  # noqa: F401
from dictation.repositories.exercise_repository import ExerciseRepository, exercise_store_scope
from dictation.utils.llm_client import LLMClient

# 测试数据库（内存SQLite，所有连接共用）
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

SAMPLE_EXERCISE = {
    "sentence": "I love reading books",
    "chunks": ["books", "reading books", "I love reading books"],
    "translation": "我喜歡讀書",
    "chunkTranslations": ["書", "讀書", "我喜歡讀書"],
    "wordMeanings": {
        "I": "我 (代名詞)",
        "love": "喜歡 (動詞)",
        "reading": "閱讀 (動名詞)",
        "books": "書 (名詞)",
    },
}


class FirstChoice:
    """总是选第一个候选值的随机数来源"""

    def choice(self, seq):
        return seq[0]


@pytest.fixture
def first_choice():
    return FirstChoice()


@pytest.fixture
def sample_exercise_data():
    return json.loads(json.dumps(SAMPLE_EXERCISE))


@pytest.fixture
def fenced_sample_response():
    return "```json\n" + json.dumps(SAMPLE_EXERCISE, ensure_ascii=False) + "\n```"


@pytest.fixture(scope="function")
def db_session():
    """创建测试数据库会话"""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    """已建好表的测试会话工厂"""
    return TestingSessionLocal


@pytest.fixture
def sqlite_store_factory(db_session):
    """每次题库操作打开一个新的测试会话"""
    return partial(exercise_store_scope, TestingSessionLocal)


@pytest.fixture
def mock_store():
    store = Mock(spec=ExerciseRepository)
    store.find_one_by_difficulty_and_length.return_value = None
    store.exists_by_sentence.return_value = False
    store.save.return_value = True
    return store


@pytest.fixture
def mock_store_factory(mock_store):
    return lambda: nullcontext(mock_store)


@pytest.fixture
def mock_llm():
    llm = Mock(spec=LLMClient)
    llm.generate_exercise_text = AsyncMock()
    return llm
