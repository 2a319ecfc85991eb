"""
题目获取流程中的错误类型

PreferenceFormatError 直接作为客户端错误返回；
StoreError 在服务层内部恢复；
QuotaExceededError 尽可能由降级链吸收；
其余错误作为生成失败返回给调用方。
"""
from typing import Optional


class DictationError(Exception):
    """所有业务错误的基类"""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class PreferenceFormatError(DictationError):
    """偏好设定不是合法的对象"""


class GenerationTransportError(DictationError):
    """调用大模型时发生的网络或API错误（与配额无关）"""

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class QuotaExceededError(DictationError):
    """大模型服务返回配额用尽或限流"""

    def __init__(self, message: str = "", retry_after_seconds: Optional[float] = None,
                 quota_limit: Optional[int] = None, status_code: int = 429):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds
        self.quota_limit = quota_limit
        self.status_code = status_code


class ParseError(DictationError):
    """模型输出中找不到可解析的JSON"""


class ValidationError(DictationError):
    """JSON可以解析，但缺少必要字段或结构不符"""


class StoreError(DictationError):
    """题库存储操作失败"""
