"""
生产环境安全的日志工具

调试模式下输出完整错误信息，生产环境只记录上下文，避免把敏感数据写进日志
"""
import logging
from typing import Optional
from urllib.parse import urlparse

from flycloth.core.config import settings


def log_error(logger: logging.Logger, context: str, exc: Optional[BaseException] = None) -> None:
    if settings.DEBUG:
        logger.error(f"[{context}] {exc}", exc_info=exc)
    else:
        logger.error(f"[{context}] 发生错误")


def mask_sensitive(value: Optional[str], visible_chars: int = 4) -> str:
    """遮盖敏感数据，只保留前几位"""
    if not value or len(value) <= visible_chars:
        return "***"
    return value[:visible_chars] + "***"


def validate_origin(request_origin: Optional[str]) -> bool:
    """
    校验请求来源，防止CSRF
    未配置APP_URL时仅在调试模式下放行
    """
    if not settings.APP_URL:
        return settings.DEBUG

    if not request_origin:
        return False

    origin_host = urlparse(request_origin).netloc
    app_host = urlparse(settings.APP_URL).netloc
    if not origin_host or not app_host:
        return False
    return origin_host == app_host
