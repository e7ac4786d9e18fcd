"""
SafePrag - Limite de Tamanho do Corpo

Checa o header Content-Length antes de chegar nas rotas. O corpo não é
lido aqui: o webhook da Stripe precisa do payload bruto intacto.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from safeprag.core.config import settings
from safeprag.core.logging_config import get_logger

log = get_logger(__name__)

BODYLESS_METHODS = {"GET", "HEAD", "OPTIONS", "DELETE"}


class LimitUploadSizeMiddleware(BaseHTTPMiddleware):
    """Recusa com 413 corpos maiores que MAX_UPLOAD_SIZE."""

    def __init__(self, app, max_size: int = None):
        super().__init__(app)
        self.max_size = max_size or settings.MAX_UPLOAD_SIZE

    async def dispatch(self, request: Request, call_next):
        if request.method in BODYLESS_METHODS:
            return await call_next(request)

        content_length = request.headers.get("content-length")
        if not content_length or not content_length.isdigit():
            return await call_next(request)

        length = int(content_length)
        if length > self.max_size:
            log.warning(
                "payload_too_large",
                content_length=length,
                max_size=self.max_size,
                path=request.url.path,
            )
            max_mb = self.max_size / (1024 * 1024)
            return JSONResponse(
                status_code=413,
                content={"detail": f"Payload muito grande. Tamanho máximo: {max_mb:.1f} MB"},
            )

        return await call_next(request)
