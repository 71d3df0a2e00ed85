"""Ollama HTTP client with availability gating and retry/backoff.

Uses urllib.request, the same transport the rest of the codebase uses for
HTTP. The gateway keeps a handful of observable flags (availability,
in-flight, last error) that readers may poll; they gate whether a request is
attempted at all but carry no other state.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
import time
import urllib.error
import urllib.request
from collections.abc import Callable
from urllib.parse import urlsplit

from pydantic import BaseModel

from fishbowl.config import DEFAULT_OLLAMA_URL, ModelConfig
from fishbowl.errors import GatewayError, GatewayErrorKind
from fishbowl.gateway.backoff import BackoffMode, compute_delay
from fishbowl.gateway.security import validate_endpoint

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 10.0
# Requests with a timeout above this are "long" and get per-attempt logging.
LONG_REQUEST_SECONDS = 30.0


class GatewayStatus(BaseModel):
    """Snapshot of the gateway's observable state."""

    base_url: str
    model: str
    is_available: bool | None
    is_processing: bool
    network_available: bool
    last_error: str | None = None


class ModelGateway:
    """Talks to ``/api/generate`` and ``/api/tags`` on a loopback Ollama."""

    def __init__(
        self,
        config: ModelConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[float, float], float] | None = None,
    ) -> None:
        self.config = config or ModelConfig()
        url = self.config.url.rstrip("/")
        if not validate_endpoint(url):
            logger.warning("Invalid Ollama URL %s, using default %s", url, DEFAULT_OLLAMA_URL)
            url = DEFAULT_OLLAMA_URL
        self.base_url = url
        self._sleep = sleep
        self._jitter = jitter
        self._lock = threading.Lock()

        self.is_available: bool | None = None
        self._in_flight = 0
        self.network_available = True
        self.last_error: GatewayError | None = None

    # -- Observable state ----------------------------------------------------

    @property
    def is_processing(self) -> bool:
        """True while any ``execute`` call is still running."""
        return self._in_flight > 0

    def status(self) -> GatewayStatus:
        with self._lock:
            return GatewayStatus(
                base_url=self.base_url,
                model=self.config.name,
                is_available=self.is_available,
                is_processing=self.is_processing,
                network_available=self.network_available,
                last_error=str(self.last_error) if self.last_error else None,
            )

    def _update_status(self, error: GatewayError | None) -> None:
        with self._lock:
            self.is_available = error is None
            self.last_error = error

    def set_network_available(self, available: bool) -> None:
        """Record reachability; coming back online triggers a fresh probe."""
        with self._lock:
            was_available = self.network_available
            self.network_available = available
        if available and not was_available:
            logger.info("Network reachable again, re-probing %s", self.base_url)
            self.probe()

    # -- Probing -------------------------------------------------------------

    def check_network(self) -> bool:
        """Resolve the endpoint host and record whether that succeeded."""
        parts = urlsplit(self.base_url)
        try:
            socket.getaddrinfo(parts.hostname, parts.port or 80)
            reachable = True
        except OSError as exc:
            logger.debug("Endpoint host unresolvable: %s", exc)
            reachable = False
        self.set_network_available(reachable)
        return reachable

    def probe(self) -> bool:
        """Check that Ollama answers ``/api/tags`` and has the model.

        Returns:
            The new availability flag.
        """
        req = urllib.request.Request(f"{self.base_url}/api/tags")
        try:
            with urllib.request.urlopen(req, timeout=PROBE_TIMEOUT) as resp:
                status = resp.status
                raw = resp.read()
        except urllib.error.HTTPError as e:
            self._update_status(
                GatewayError(GatewayErrorKind.SERVER_ERROR, str(e.reason), status_code=e.code)
            )
            return False
        except (urllib.error.URLError, OSError) as e:
            self._update_status(GatewayError(GatewayErrorKind.NETWORK_ERROR, str(e)))
            return False

        if status != 200:
            self._update_status(GatewayError(GatewayErrorKind.SERVER_ERROR, status_code=status))
            return False

        try:
            data = json.loads(raw.decode("utf-8"))
            models = [m.get("name", "") for m in data.get("models", [])]
        except (UnicodeDecodeError, json.JSONDecodeError, AttributeError, TypeError):
            models = []

        # Match both "gemma3" and "gemma3:latest"
        wanted = self.config.name
        if models and not any(m == wanted or m.startswith(f"{wanted}:") for m in models):
            self._update_status(
                GatewayError(
                    GatewayErrorKind.MODEL_UNAVAILABLE,
                    f"model '{wanted}' not found; available: {', '.join(models)}",
                )
            )
            return False

        self._update_status(None)
        return True

    # -- Requests ------------------------------------------------------------

    def _build_request(self, prompt: str) -> urllib.request.Request:
        temperature, top_p = self.config.sampling
        payload = {
            "model": self.config.name,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature, "top_p": top_p},
        }
        try:
            body = json.dumps(payload).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise GatewayError(GatewayErrorKind.INVALID_REQUEST, str(exc)) from exc
        return urllib.request.Request(
            f"{self.base_url}/api/generate",
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )

    def _attempt(self, req: urllib.request.Request, timeout: float) -> str:
        """One HTTP round trip; every failure becomes a GatewayError."""
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                status = resp.status
                raw = resp.read()
        except urllib.error.HTTPError as e:
            raise GatewayError(
                GatewayErrorKind.SERVER_ERROR, str(e.reason), status_code=e.code
            ) from e
        except urllib.error.URLError as e:
            raise GatewayError(GatewayErrorKind.NETWORK_ERROR, str(e.reason)) from e
        except OSError as e:
            raise GatewayError(GatewayErrorKind.NETWORK_ERROR, str(e)) from e

        if status != 200:
            raise GatewayError(GatewayErrorKind.SERVER_ERROR, status_code=status)

        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise GatewayError(GatewayErrorKind.RESPONSE_PARSING_ERROR, str(e)) from e

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise GatewayError(GatewayErrorKind.RESPONSE_PARSING_ERROR, "no 'response' field")
        return text

    def execute(
        self,
        prompt: str,
        timeout: float | None = None,
        backoff: BackoffMode = BackoffMode.FIXED,
    ) -> str:
        """Send *prompt* to the model and return its raw text.

        Args:
            prompt: Non-empty prompt text.
            timeout: Per-attempt timeout in seconds (defaults to config).
            backoff: Delay strategy between failed attempts.

        Returns:
            The ``response`` field of the model's reply.

        Raises:
            GatewayError: Immediately if the prompt is empty or the endpoint
                is known to be unavailable; otherwise the last attempt's
                error once ``max_retries`` attempts have failed.
        """
        if not prompt.strip():
            raise GatewayError(GatewayErrorKind.INVALID_REQUEST, "empty prompt")

        with self._lock:
            refused = self.is_available is False or not self.network_available
            prior = self.last_error
        if refused:
            detail = str(prior) if prior else ""
            raise GatewayError(GatewayErrorKind.MODEL_UNAVAILABLE, detail)

        timeout = timeout if timeout is not None else self.config.timeout
        long_request = timeout > LONG_REQUEST_SECONDS
        req = self._build_request(prompt)
        max_retries = self.config.max_retries

        with self._lock:
            self._in_flight += 1
        try:
            for attempt in range(1, max_retries + 1):
                if long_request:
                    logger.debug("Long request attempt %d of %d", attempt, max_retries)
                with self._lock:
                    self.last_error = None
                try:
                    text = self._attempt(req, timeout)
                except GatewayError as exc:
                    if long_request:
                        logger.error("Request failed: %s", exc)
                    if attempt == max_retries:
                        with self._lock:
                            self.last_error = exc
                        raise
                    delay = compute_delay(attempt, self.config.retry_delay, backoff, self._jitter)
                    logger.debug(
                        "Attempt %d failed (%s), retrying in %.2fs", attempt, exc.kind, delay
                    )
                    self._sleep(delay)
                    continue

                with self._lock:
                    self.last_error = None
                    self.is_available = True
                logger.debug("Model response length: %d chars", len(text))
                return text
        finally:
            with self._lock:
                self._in_flight -= 1

        raise GatewayError(GatewayErrorKind.UNKNOWN, "no attempts made")
