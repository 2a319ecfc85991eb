import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dictation.agents.chunk_validator import is_all_correct, split_into_words, validate_input
from dictation.agents.preferences import normalize_preferences
from dictation.api.schemas.exercise_schemas import ErrorResponse, Exercise, ValidateRequest, ValidateResponse
from dictation.config.settings import settings
from dictation.repositories.exercise_repository import ExerciseRepository
from dictation.services.exercise_service import ExerciseService
from dictation.utils.database import get_db
from dictation.utils.duration import format_retry_delay, retry_after_header
from dictation.utils.exceptions import (
    DictationError,
    GenerationTransportError,
    PreferenceFormatError,
    QuotaExceededError,
    StoreError,
)
from dictation.utils.llm_client import create_llm_client

logger = logging.getLogger(__name__)

router = APIRouter()

GENERIC_FAILURE_MESSAGE = "生成題目失敗，請稍後再試"

_exercise_service: Optional[ExerciseService] = None


def get_exercise_service() -> ExerciseService:
    """取得全局题目服务（首次使用时创建）"""
    global _exercise_service
    if _exercise_service is None:
        _exercise_service = ExerciseService(create_llm_client())
    return _exercise_service


def build_quota_error_response(error: QuotaExceededError) -> JSONResponse:
    """配额用尽时给使用者的友善提示"""
    quota_limit = error.quota_limit or settings.DEFAULT_QUOTA_LIMIT
    retry_after = format_retry_delay(error.retry_after_seconds)

    message = f"今日免費配額已用完（{quota_limit}次/天）"
    if retry_after:
        message += f"，請在 {retry_after} 後再試"
    else:
        message += "，請明天再試或考慮升級方案"

    content = {"error": message, "type": "rate_limit"}
    headers = {}
    if retry_after:
        content["retryAfter"] = retry_after
        headers["Retry-After"] = retry_after_header(error.retry_after_seconds)

    return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content=content, headers=headers)


def build_error_response(error: DictationError, status_code: int) -> JSONResponse:
    message = error.message or GENERIC_FAILURE_MESSAGE
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post(
    "/generate",
    response_model=Exercise,
    responses={
        400: {"model": ErrorResponse, "description": "偏好设定格式错误"},
        429: {"model": ErrorResponse, "description": "大模型配额用尽且无备用题目"},
        500: {"model": ErrorResponse, "description": "生成或解析失败"},
        502: {"model": ErrorResponse, "description": "大模型服务连接失败"},
    },
)
async def generate_exercise(request: Request, service: ExerciseService = Depends(get_exercise_service)):
    """
    根据偏好设定取得一道题目
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    try:
        preferences = normalize_preferences(payload)
        exercise = await service.generate(preferences)
    except PreferenceFormatError as e:
        return build_error_response(e, status.HTTP_400_BAD_REQUEST)
    except QuotaExceededError as e:
        return build_quota_error_response(e)
    except GenerationTransportError as e:
        logger.error(f"生成题目失败（大模型调用）: {e}")
        status_code = e.status_code if e.status_code and e.status_code >= 400 else status.HTTP_502_BAD_GATEWAY
        return build_error_response(e, status_code)
    except DictationError as e:
        logger.error(f"生成题目失败: {e}")
        return build_error_response(e, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return JSONResponse(content=exercise.model_dump(by_alias=True))


@router.post("/validate", response_model=ValidateResponse,
             responses={422: {"model": ErrorResponse, "description": "请求格式错误"}})
async def validate_chunk(body: ValidateRequest):
    """
    比对使用者输入与当前chunk
    """
    target_words = body.target_words if body.target_words is not None else split_into_words(body.chunk or "")
    results = validate_input(body.typed_words, target_words)
    return ValidateResponse(results=results, all_correct=is_all_correct(results))


@router.get("/stats")
async def get_exercise_stats(db: Session = Depends(get_db)):
    """
    题库中各难度、长度的题目数量
    """
    repo = ExerciseRepository(db)
    try:
        buckets = repo.get_stats()
        total = repo.count()
    except (StoreError, SQLAlchemyError) as e:
        logger.error(f"获取题库统计失败: {e}")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"error": "題庫暫時無法使用"})
    return {"total": total, "buckets": buckets}
