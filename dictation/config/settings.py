from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List

class Settings(BaseSettings):
    """应用配置"""

    # 应用配置
    APP_NAME: str = "英文聽寫練習"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./dictation.db"

    # 大模型配置（OpenAI兼容接口，默认指向Gemini）
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "gemini-2.5-flash"
    LLM_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    LLM_MAX_TOKENS: int = 2000
    LLM_TEMPERATURE: float = 0.9
    LLM_TIMEOUT: int = 60
    USE_MOCK_LLM: bool = False

    # 免费层每日配额，服务端未返回quotaValue时使用
    DEFAULT_QUOTA_LIMIT: int = 20

    # 跨域配置
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
    LOG_FILE: str = "dictation.log"

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

# 创建全局配置实例
settings = Settings()
