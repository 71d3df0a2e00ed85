"""Guards on what leaves the process: loopback-only URLs and bounded prompts."""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

ALLOWED_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})
MIN_PORT = 1024
MAX_PORT = 65535
MAX_PROMPT_CHARS = 10_000

_WHITESPACE_RE = re.compile(r"\s+")


def validate_endpoint(url: str) -> bool:
    """True if *url* points at a loopback host on a non-privileged port."""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        logger.warning("Blocked malformed model URL: %s", url)
        return False

    if parts.scheme not in ("http", "https"):
        logger.warning("Blocked model URL with scheme %r", parts.scheme)
        return False

    host = parts.hostname
    if host not in ALLOWED_HOSTS:
        logger.warning("Blocked request to non-localhost host: %s", host)
        return False

    if port is None:
        port = 443 if parts.scheme == "https" else 80
    if not MIN_PORT <= port <= MAX_PORT:
        logger.warning("Blocked request to suspicious port: %d", port)
        return False

    return True


def sanitize_for_llm(content: str) -> str:
    """Drop NUL bytes, collapse whitespace and cap the length."""
    sanitized = _WHITESPACE_RE.sub(" ", content.replace("\0", "")).strip()
    if len(sanitized) > MAX_PROMPT_CHARS:
        logger.warning("Content truncated for LLM processing")
        return sanitized[:MAX_PROMPT_CHARS]
    return sanitized
