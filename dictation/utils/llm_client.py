import asyncio
import json
import logging
import random
import re
import time
from typing import Any, Dict, List, Optional

import openai
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from dictation.config.settings import settings
from dictation.utils.duration import parse_retry_delay
from dictation.utils.exceptions import GenerationTransportError, ParseError, QuotaExceededError

logger = logging.getLogger(__name__)

_QUOTA_LIMIT_PATTERNS = (
    re.compile(r"limit[:\s]+(\d+)", re.IGNORECASE),
    re.compile(r"quotaValue[\"']?\s*:\s*[\"']?(\d+)", re.IGNORECASE),
)


def _decode_error_payload(body: Any) -> Dict[str, Any]:
    """
    取出服务端错误详情

    错误内容可能是字串、列表或多层包装的对象，这里统一展开成
    {"message": ..., "status": ..., "details": [...]} 形式的字典。
    """
    for _ in range(3):
        if isinstance(body, str):
            try:
                body = json.loads(body)
            except ValueError:
                return {"message": body}
        if isinstance(body, list):
            body = body[0] if body else {}
        if isinstance(body, dict) and "error" in body and not body.get("details"):
            body = body["error"]
            continue
        break
    return body if isinstance(body, dict) else {}


def _is_quota_error(error: openai.APIStatusError, payload: Dict[str, Any]) -> bool:
    if isinstance(error, openai.RateLimitError) or error.status_code == 429:
        return True
    return str(payload.get("status", "")).upper() == "RESOURCE_EXHAUSTED"


def _quota_details(payload: Dict[str, Any], message: str):
    quota_limit = None
    retry_after = None

    details = payload.get("details")
    if isinstance(details, list):
        for detail in details:
            if not isinstance(detail, dict):
                continue
            violations = detail.get("violations") or (detail.get("quotaFailure") or {}).get("violations") or []
            for violation in violations:
                if isinstance(violation, dict) and violation.get("quotaValue"):
                    try:
                        quota_limit = int(str(violation["quotaValue"]))
                    except ValueError:
                        pass
            delay = detail.get("retryDelay") or (detail.get("retryInfo") or {}).get("retryDelay")
            if delay and retry_after is None:
                retry_after = parse_retry_delay(delay)

    if quota_limit is None:
        for pattern in _QUOTA_LIMIT_PATTERNS:
            found = pattern.search(message)
            if found:
                quota_limit = int(found.group(1))
                break

    if retry_after is None:
        retry_after = parse_retry_delay(message)

    return quota_limit, retry_after


def to_quota_error(error: openai.APIStatusError, payload: Optional[Dict[str, Any]] = None) -> QuotaExceededError:
    """将限流响应转换为 QuotaExceededError，尽量带上配额与重试时间"""
    payload = payload if payload is not None else _decode_error_payload(error.body)
    message = str(payload.get("message") or error.message or error)
    quota_limit, retry_after = _quota_details(payload, message)

    if retry_after is None and error.response is not None:
        retry_after = parse_retry_delay(error.response.headers.get("retry-after"))

    return QuotaExceededError(
        message,
        retry_after_seconds=retry_after,
        quota_limit=quota_limit,
        status_code=error.status_code or 429,
    )


class LLMClient:
    """大模型客户端，通过OpenAI兼容接口调用（默认Gemini）"""

    def __init__(self, client: Optional[openai.OpenAI] = None, model: Optional[str] = None):
        self.api_key = settings.LLM_API_KEY
        self.model = model or settings.LLM_MODEL
        self.base_url = settings.LLM_API_BASE
        self.max_tokens = settings.LLM_MAX_TOKENS
        self.temperature = settings.LLM_TEMPERATURE
        self.timeout = settings.LLM_TIMEOUT

        # 重试交给tenacity，且只重试连接类错误
        self.client = client or openai.OpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
        )

        logger.info(f"LLM客户端初始化完成，模型: {self.model}")

    @retry(
        retry=retry_if_exception_type(openai.APIConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        reraise=True,
    )
    async def generate_response(self, messages: List[Dict[str, str]],
                                temperature: Optional[float] = None,
                                max_tokens: Optional[int] = None) -> str:
        """
        调用大模型生成响应

        Args:
            messages: 消息列表，格式为 [{"role": "user", "content": "..."}]
            temperature: 生成温度
            max_tokens: 最大token数

        Returns:
            str: 模型生成的响应内容
        """
        logger.debug(f"调用LLM，消息数: {len(messages)}, 模型: {self.model}")

        try:
            start_time = time.time()
            loop = asyncio.get_event_loop()
            response = await loop.run_in_executor(
                None,
                lambda: self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature if temperature is None else temperature,
                    max_tokens=max_tokens or self.max_tokens,
                    stream=False
                )
            )

            content = response.choices[0].message.content if response.choices else None
            usage = response.usage

            elapsed_time = time.time() - start_time
            logger.debug(f"LLM调用成功: {len(content or '')}字符, "
                         f"耗时: {elapsed_time:.2f}s, "
                         f"Token使用: {usage.total_tokens if usage else 'N/A'}")
            return content or ""

        except openai.APITimeoutError as e:
            logger.error(f"LLM调用超时: {e}")
            raise
        except openai.APIError as e:
            logger.error(f"LLM API错误: {e}")
            raise

    async def generate_exercise_text(self, prompt: str) -> str:
        """
        用指令文本请求一道题目，返回模型原始文字

        Raises:
            QuotaExceededError: 配额用尽或被限流
            GenerationTransportError: 其他网络或API错误
            ParseError: 模型返回空内容
        """
        messages = [{"role": "user", "content": prompt}]
        try:
            content = await self.generate_response(messages)
        except openai.APIStatusError as e:
            payload = _decode_error_payload(e.body)
            if _is_quota_error(e, payload):
                quota_error = to_quota_error(e, payload)
                logger.warning(f"大模型配额用尽: 限额={quota_error.quota_limit}, "
                               f"建议等待={quota_error.retry_after_seconds}")
                raise quota_error from e
            message = str(payload.get("message") or e.message or e)
            raise GenerationTransportError(message, status_code=e.status_code) from e
        except openai.APIError as e:
            raise GenerationTransportError(str(e)) from e

        if not content.strip():
            raise ParseError("無法從 API 回應中提取文字內容")
        return content


class MockLLMClient(LLMClient):
    """模拟LLM客户端，用于测试和开发，从备用题库中随机返回一题"""

    def __init__(self):
        self.model = "mock"
        logger.info("使用模拟LLM客户端")

    async def generate_response(self, messages: List[Dict[str, str]],
                                temperature: Optional[float] = None,
                                max_tokens: Optional[int] = None) -> str:
        """模拟生成响应"""
        from dictation.agents.fallback_bank import STATIC_EXERCISES

        exercise = random.choice(list(STATIC_EXERCISES.values()))
        payload = json.dumps(exercise.model_dump(by_alias=True), ensure_ascii=False, indent=2)
        return f"```json\n{payload}\n```"


def create_llm_client(use_mock: bool = False) -> LLMClient:
    """创建LLM客户端实例"""
    if use_mock or settings.USE_MOCK_LLM or not settings.LLM_API_KEY:
        logger.info("使用模拟LLM客户端（开发模式）")
        return MockLLMClient()
    else:
        return LLMClient()
