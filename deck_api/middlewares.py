import logging
import time

from fastapi import Request

logger = logging.getLogger(__name__)


def log_request(method: str, path: str, status_code: int, duration_ms: float) -> None:
    """Log one completed request with its status and latency."""
    logger.info(f"{method} {path} -> {status_code} ({duration_ms:.1f} ms)")


def log_error(error: str, method: str, path: str) -> None:
    """Log a request that raised before a response was produced."""
    logger.error(f"Error in {method} {path}: {error}")


async def request_logging_middleware(request: Request, call_next):
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        log_error(str(e), request.method, request.url.path)
        raise
    log_request(request.method, request.url.path, response.status_code, (time.perf_counter() - start) * 1000)
    return response
