import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from talkwell.consultation.state import Session

logger = logging.getLogger("consultation")


async def bounded(awaitable: Awaitable[Any], timeout: float) -> Any:
    """Single attempt under a deadline. Used for calls that must not repeat,
    such as placing a call with the voice engine."""
    return await asyncio.wait_for(awaitable, timeout=timeout)


async def with_retry_timeout(
    fn: Callable[..., Awaitable[Any]],
    *args,
    timeout: float = 3.0,
    retries: int = 1,
    **kwargs,
) -> Any:
    """Retry ``fn`` on failure or timeout. Only for idempotent engine calls."""
    name = getattr(fn, "__name__", repr(fn))
    attempt = 0
    while True:
        attempt += 1
        try:
            return await bounded(fn(*args, **kwargs), timeout)
        except Exception as e:
            if attempt > retries:
                raise
            logger.warning("%s failed (attempt %d of %d): %r", name, attempt, retries + 1, e)


def log_step(patient_id: str, step: str, session: Optional[Session] = None, **fields) -> None:
    if session is not None:
        fields = {"state": session.state.value, "call": session.call_id, **fields}
    details = " ".join(f"{k}={v}" for k, v in fields.items() if v is not None)
    logger.info("[patient=%s] %s %s", patient_id, step, details)
