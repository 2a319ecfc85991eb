"""
重试等待时间的解析与显示

大模型服务在限流时会以多种形式给出建议等待时间，这里统一解析，
接受的格式：
    - 数字（秒）：20、20.75
    - 纯数字字符串："20"、"20.75"
    - 带单位："20s"、"20.755467853s"、"2m"、"1m30s"、"1h5m"
    - 错误信息文本："Please retry in 20.7s."、'"retryDelay": "20s"'
无法解析、零或负数一律视为"未知"（返回None），不会当作0秒。
"""
import math
import re
from typing import Optional, Union

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_COMPOUND_RE = re.compile(
    r"(?:(?P<hours>\d+(?:\.\d+)?)\s*h)?\s*"
    r"(?:(?P<minutes>\d+(?:\.\d+)?)\s*m)?\s*"
    r"(?:(?P<seconds>\d+(?:\.\d+)?)\s*s)?"
)
_MESSAGE_PATTERNS = (
    re.compile(r"retry.*?in\s*(\d+(?:\.\d+)?)\s*s", re.IGNORECASE | re.DOTALL),
    re.compile(r"retryDelay[\"']?\s*:\s*[\"']?(\d+(?:\.\d+)?)s?", re.IGNORECASE),
)


def _positive(value: float) -> Optional[float]:
    if value is None or math.isnan(value) or value <= 0:
        return None
    return value


def parse_retry_delay(value: Union[str, int, float, None]) -> Optional[float]:
    """
    解析重试等待时间

    Args:
        value: 服务端给出的等待时间（数字、时长字符串或整段错误信息）

    Returns:
        Optional[float]: 等待秒数，无法确定时返回None
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return _positive(float(value))

    text = str(value).strip()
    if not text:
        return None

    if _NUMBER_RE.fullmatch(text):
        return _positive(float(text))

    match = _COMPOUND_RE.fullmatch(text.lower())
    if match and any(match.groupdict().values()):
        hours = float(match.group("hours") or 0)
        minutes = float(match.group("minutes") or 0)
        seconds = float(match.group("seconds") or 0)
        return _positive(hours * 3600 + minutes * 60 + seconds)

    for pattern in _MESSAGE_PATTERNS:
        found = pattern.search(text)
        if found:
            return _positive(float(found.group(1)))

    return None


def format_retry_delay(seconds: Optional[float]) -> Optional[str]:
    """将秒数转换为给用户看的等待时间，例如 "45秒"、"2分鐘"、"1分30秒" """
    if seconds is None or seconds <= 0:
        return None

    minutes = int(seconds // 60)
    remaining = int(seconds % 60)
    if minutes > 0:
        return f"{minutes}分{remaining}秒" if remaining > 0 else f"{minutes}分鐘"
    return f"{math.ceil(seconds)}秒"


def retry_after_header(seconds: Optional[float]) -> Optional[str]:
    """Retry-After 响应头的值（整数秒，向上取整）"""
    if seconds is None or seconds <= 0:
        return None
    return str(math.ceil(seconds))
