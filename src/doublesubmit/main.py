import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from src.doublesubmit.config import IS_PROD, CSRFConfig, csrf_config_from_env
from src.doublesubmit.logging_config import init_debug_logging
from src.doublesubmit.middleware import CSRFMiddleware, get_csrf_token
from src.doublesubmit.validator import CSRFValidator

logger = logging.getLogger(__name__)


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler: return clean JSON instead of leaking stack traces."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "internal_error", "message": "An internal server error occurred"}},
    )


def create_app(config: CSRFConfig | None = None) -> FastAPI:
    """Build the app with CSRF protection configured from *config* (or the env)."""
    validator = CSRFValidator.from_config(config or csrf_config_from_env())

    app = FastAPI(title="doublesubmit")
    app.add_exception_handler(Exception, _unhandled_exception_handler)
    app.add_middleware(CSRFMiddleware, validator=validator)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/api/csrf-token")
    def csrf_token(token: str = Depends(get_csrf_token)) -> dict:
        """Hand the current token to the client for the x-csrf-token header."""
        return {"csrf_token": token}

    return app


if not IS_PROD:
    init_debug_logging(logging.INFO)

app = create_app()
