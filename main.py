"""
finledgr - FastAPI Backend

Categorization pattern engine for the finance tracker.

Run Instructions:
-----------------
1. Install dependencies:
   pip install -e .

2. Run the app locally with uvicorn:
   uvicorn main:app --host 0.0.0.0 --port 8000 --reload

3. Test /health endpoint:
   curl http://localhost:8000/health

4. Ask for suggestions:
   curl -X POST http://localhost:8000/patterns/suggest \
     -H "X-User-Id: user-1" -H "Content-Type: application/json" \
     -d '{"description": "AMAZON MARKETPLACE PAYMENT", "amount": 12.99}'
"""
import time
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from finledgr import __version__
from finledgr.api import patterns_router
from finledgr.services.errors import FinledgrError, to_http_exception
from finledgr.services.logging import log_error, log_request, logger

app = FastAPI(
    title="finledgr API",
    description="Learned categorization patterns for bank transactions.",
    version=__version__,
)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log requests."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        user_id = request.headers.get("X-User-Id")

        try:
            response = await call_next(request)
            duration_ms = (time.time() - start_time) * 1000
            log_request(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                user_id=user_id,
            )
            return response
        except Exception as e:
            log_error("request_exception", str(e), {"path": request.url.path, "method": request.method})
            raise


app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FinledgrError)
async def finledgr_exception_handler(request: Request, exc: FinledgrError):
    """Handle all FinledgrErrors with structured responses."""
    http_exc = to_http_exception(exc)
    if http_exc.status_code >= 500:
        log_error(exc.code.value, exc.message, {"path": request.url.path, **exc.context})
    else:
        logger.warning("%s on %s: %s", exc.code.value, request.url.path, exc.message)
    return JSONResponse(status_code=http_exc.status_code, content=http_exc.detail)


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


app.include_router(patterns_router)
