"""SafePrag - Middlewares"""
from safeprag.middleware.logger import RequestLoggingMiddleware
from safeprag.middleware.limits import LimitUploadSizeMiddleware

__all__ = ["RequestLoggingMiddleware", "LimitUploadSizeMiddleware"]
