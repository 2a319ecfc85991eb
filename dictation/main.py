#!/usr/bin/env python3
"""
英文聽寫練習 - FastAPI 主应用入口
Description: 提供出题与逐字比对的REST API，语音播放由前端负责
"""

import logging
import platform
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import psutil
import uvicorn

from dictation.config.settings import settings
from dictation.utils.logger import setup_logging
from dictation.utils.database import init_db, check_db_connection
from dictation.api.routes import exercises

# 设置日志
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理
    - 启动时初始化数据库和题目服务
    - 关闭时等待后台保存完成
    """
    logger.info("初始化聽寫練習应用...")

    try:
        init_db()
        logger.info("数据库初始化完成")

        exercises.get_exercise_service()
        logger.info("服务层初始化完成")

    except Exception as e:
        logger.error(f"应用启动失败: {e}")
        raise

    yield  # 应用运行期间

    logger.info("正在关闭聽寫練習应用...")
    await exercises.get_exercise_service().wait_background_tasks()
    logger.info("聽寫練習应用已安全关闭")

def create_application() -> FastAPI:
    """创建并配置FastAPI应用实例"""

    app = FastAPI(
        title=settings.APP_NAME,
        description="以大模型出题、按片段逐步听写的英文练习系统",
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # 配置CORS中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 全局异常处理
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail}
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc):
        logger.warning(f"请求格式错误: {exc.errors()}")
        return JSONResponse(
            status_code=422,
            content={"error": "請求格式不正確"}
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.error(f"未处理的异常: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "內部伺服器錯誤"}
        )

    return app

# 创建应用实例
app = create_application()

# 注册API路由
app.include_router(exercises.router, prefix="/api/v1/exercises", tags=["题目"])

def _get_current_timestamp() -> str:
    """获取当前时间戳"""
    return datetime.now(timezone.utc).isoformat()

# 健康检查端点
@app.get("/")
async def root():
    """根端点 - 服务状态检查"""
    return {
        "status": "running",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": _get_current_timestamp()
    }

@app.get("/health")
async def health_check():
    """健康检查端点（不调用大模型，避免消耗配额）"""
    db_status = check_db_connection()

    return {
        "status": "healthy" if db_status else "unhealthy",
        "database": "connected" if db_status else "disconnected",
        "timestamp": _get_current_timestamp()
    }

@app.get("/api/v1/system/info")
async def system_info():
    """系统信息端点"""
    return {
        "python_version": platform.python_version(),
        "platform": platform.platform(),
        "cpu_usage": psutil.cpu_percent(),
        "memory_usage": psutil.virtual_memory().percent,
        "llm_model": settings.LLM_MODEL,
        "pending_saves": exercises.get_exercise_service().pending_saves,
    }

if __name__ == "__main__":
    """开发环境直接运行"""
    uvicorn.run(
        "dictation.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,  # 开发模式热重载
        log_level="info",
    )
