from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
import logging

from dictation.config.settings import settings

logger = logging.getLogger(__name__)

def _engine_options(database_url: str) -> dict:
    """SQLite 需要允许跨线程使用连接（后台保存在线程池中执行）"""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 3600}

# 创建数据库引擎
engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,  # 在DEBUG模式下输出SQL语句
    **_engine_options(settings.DATABASE_URL),
)

# 创建SessionLocal类
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"数据库会话错误: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def get_db_session() -> Session:
    """
    直接获取数据库会话
    在脚本中使用
    """
    return SessionLocal()


def check_db_connection() -> bool:
    """检查数据库连接是否正常"""
    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        return True
    except Exception as e:
        logger.error(f"数据库连接检查失败: {e}")
        return False

def init_db(bind=None):
    """初始化数据库表"""
    try:
        from dictation.models.base import Base
        from dictation.models.exercise import ExerciseRecord  # noqa: F401

        # 创建所有表
        Base.metadata.create_all(bind=bind or engine)
        logger.info("数据库表初始化完成")

    except Exception as e:
        logger.error(f"数据库初始化失败: {e}")
        raise
