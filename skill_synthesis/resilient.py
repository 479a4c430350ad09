"""Retry-on-transient-failure wrapper for any ``LlmClient``."""

from __future__ import annotations

import asyncio
import logging
import re

from .llm import LlmClient

logger = logging.getLogger(__name__)

TRANSIENT_PATTERNS = (
    "connection closed",
    "timed out",
    "reset by peer",
    "broken pipe",
)
# status codes only count next to a status label or their reason phrase
_TRANSIENT_STATUS_RE = re.compile(
    r"(?:error code|status(?:[ _]code)?|http(?:/[\d.]+)?)\D{0,3}(?:429|50[023])\b"
    r"|\b(?:429 too many requests|500 internal server error|502 bad gateway|503 service unavailable)\b"
)


def is_transient_error(exc: BaseException) -> bool:
    """True for network and service hiccups that are safe to retry."""
    text = str(exc).lower()
    if any(pattern in text for pattern in TRANSIENT_PATTERNS):
        return True
    return _TRANSIENT_STATUS_RE.search(text) is not None


class ResilientLlmClient:
    """Wraps another client with bounded retries on transient errors.

    Makes at most ``max_retries + 1`` calls. Non-transient errors propagate
    on the first failure; after the last retry the last error is re-raised
    unchanged.
    """

    def __init__(self, inner: LlmClient, max_retries: int = 3, retry_delay: float = 2.0):
        self.inner = inner
        self.max_retries = max(0, max_retries)
        self.retry_delay = max(0.0, retry_delay)

    async def complete(self, prompt: str) -> str:
        for attempt in range(self.max_retries + 1):
            try:
                return await self.inner.complete(prompt)
            except Exception as e:
                if not is_transient_error(e) or attempt >= self.max_retries:
                    raise
                logger.warning(
                    "Transient model error (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1,
                    self.max_retries + 1,
                    self.retry_delay,
                    e,
                )
                await asyncio.sleep(self.retry_delay)
        raise RuntimeError("unreachable")
