"""Tests for the Ollama model gateway."""

from __future__ import annotations

import json
import threading
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from fishbowl.config import DEFAULT_OLLAMA_URL, ModelConfig, ModelPreset
from fishbowl.errors import GatewayError, GatewayErrorKind, Severity
from fishbowl.gateway import BackoffMode, ModelGateway


def _mock_urlopen(response_data: dict, status: int = 200):
    """Create a mock for urllib.request.urlopen."""
    mock_resp = MagicMock()
    mock_resp.status = status
    mock_resp.read.return_value = json.dumps(response_data).encode("utf-8")
    mock_resp.__enter__ = lambda s: s
    mock_resp.__exit__ = MagicMock(return_value=False)
    return mock_resp


def _make_gateway(**kwargs) -> tuple[ModelGateway, list[float]]:
    sleeps: list[float] = []
    config = ModelConfig(**kwargs)
    gateway = ModelGateway(config, sleep=sleeps.append, jitter=lambda low, high: 0.25)
    return gateway, sleeps


class TestEndpoint:
    def test_default_url(self) -> None:
        gateway, _ = _make_gateway()
        assert gateway.base_url == DEFAULT_OLLAMA_URL

    def test_non_loopback_url_falls_back(self) -> None:
        gateway, _ = _make_gateway(url="http://example.com:11434")
        assert gateway.base_url == DEFAULT_OLLAMA_URL

    def test_trailing_slash_stripped(self) -> None:
        gateway, _ = _make_gateway(url="http://127.0.0.1:8080/")
        assert gateway.base_url == "http://127.0.0.1:8080"

    def test_initial_state(self) -> None:
        gateway, _ = _make_gateway()
        status = gateway.status()
        assert status.is_available is None
        assert status.is_processing is False
        assert status.network_available is True
        assert status.last_error is None


class TestExecute:
    def test_successful_response(self) -> None:
        gateway, sleeps = _make_gateway(name="gemma3:4b", preset=ModelPreset.PRECISE)
        resp = _mock_urlopen({"response": "hello there"})
        with patch("urllib.request.urlopen", return_value=resp) as mock_open:
            assert gateway.execute("say hi") == "hello there"

        req = mock_open.call_args[0][0]
        assert req.full_url == f"{DEFAULT_OLLAMA_URL}/api/generate"
        assert req.get_method() == "POST"
        body = json.loads(req.data.decode("utf-8"))
        assert body == {
            "model": "gemma3:4b",
            "prompt": "say hi",
            "stream": False,
            "options": {"temperature": 0.5, "top_p": 0.8},
        }
        assert mock_open.call_args.kwargs["timeout"] == 30.0
        assert sleeps == []
        assert gateway.is_available is True
        assert gateway.is_processing is False

    def test_explicit_timeout(self) -> None:
        gateway, _ = _make_gateway()
        resp = _mock_urlopen({"response": "ok"})
        with patch("urllib.request.urlopen", return_value=resp) as mock_open:
            gateway.execute("prompt", timeout=120)
        assert mock_open.call_args.kwargs["timeout"] == 120

    def test_empty_prompt_rejected_without_request(self) -> None:
        gateway, _ = _make_gateway()
        with patch("urllib.request.urlopen") as mock_open:
            with pytest.raises(GatewayError) as exc_info:
                gateway.execute("   ")
        assert exc_info.value.kind == GatewayErrorKind.INVALID_REQUEST
        mock_open.assert_not_called()

    def test_refuses_when_marked_unavailable(self) -> None:
        gateway, _ = _make_gateway()
        gateway.is_available = False
        with patch("urllib.request.urlopen") as mock_open:
            with pytest.raises(GatewayError) as exc_info:
                gateway.execute("prompt")
        assert exc_info.value.kind == GatewayErrorKind.MODEL_UNAVAILABLE
        mock_open.assert_not_called()

    def test_refuses_when_offline(self) -> None:
        gateway, _ = _make_gateway()
        gateway.network_available = False
        with patch("urllib.request.urlopen") as mock_open:
            with pytest.raises(GatewayError) as exc_info:
                gateway.execute("prompt")
        assert exc_info.value.kind == GatewayErrorKind.MODEL_UNAVAILABLE
        mock_open.assert_not_called()


class TestConcurrentCalls:
    def test_processing_until_every_call_finishes(self) -> None:
        gateway, _ = _make_gateway()
        started = {"slow": threading.Event(), "fast": threading.Event()}
        release = {"slow": threading.Event(), "fast": threading.Event()}

        def urlopen(req, timeout):
            prompt = json.loads(req.data.decode("utf-8"))["prompt"]
            started[prompt].set()
            release[prompt].wait(5)
            return _mock_urlopen({"response": prompt})

        results: dict[str, str] = {}

        def run(prompt: str) -> None:
            results[prompt] = gateway.execute(prompt)

        with patch("urllib.request.urlopen", side_effect=urlopen):
            slow = threading.Thread(target=run, args=("slow",))
            fast = threading.Thread(target=run, args=("fast",))
            slow.start()
            fast.start()
            assert started["slow"].wait(5)
            assert started["fast"].wait(5)
            assert gateway.is_processing is True

            release["fast"].set()
            fast.join(5)
            assert results["fast"] == "fast"
            assert gateway.is_processing is True
            assert gateway.status().is_processing is True

            release["slow"].set()
            slow.join(5)

        assert results["slow"] == "slow"
        assert gateway.is_processing is False

    def test_failed_call_releases_its_slot(self) -> None:
        gateway, _ = _make_gateway(max_retries=1)
        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("refused")):
            with pytest.raises(GatewayError):
                gateway.execute("prompt")
        assert gateway.is_processing is False


class TestRetries:
    def test_two_failures_then_success(self) -> None:
        gateway, sleeps = _make_gateway(max_retries=3, retry_delay=2.0)
        effects = [
            urllib.error.URLError("Connection refused"),
            urllib.error.URLError("Connection refused"),
            _mock_urlopen({"response": "third time lucky"}),
        ]
        with patch("urllib.request.urlopen", side_effect=effects) as mock_open:
            assert gateway.execute("prompt") == "third time lucky"
        assert mock_open.call_count == 3
        assert sleeps == [2.0, 2.0]
        assert gateway.last_error is None

    def test_always_failing_surfaces_last_error(self) -> None:
        gateway, sleeps = _make_gateway(max_retries=3)
        effects = [
            urllib.error.URLError("refused"),
            urllib.error.URLError("refused"),
            _mock_urlopen({"error": "boom"}, status=503),
        ]
        with patch("urllib.request.urlopen", side_effect=effects) as mock_open:
            with pytest.raises(GatewayError) as exc_info:
                gateway.execute("prompt")
        assert mock_open.call_count == 3
        assert len(sleeps) == 2
        assert exc_info.value.kind == GatewayErrorKind.SERVER_ERROR
        assert exc_info.value.status_code == 503
        assert gateway.last_error is exc_info.value
        assert gateway.is_processing is False

    def test_max_retries_respected(self) -> None:
        gateway, _ = _make_gateway(max_retries=5)
        with patch(
            "urllib.request.urlopen",
            side_effect=urllib.error.URLError("refused"),
        ) as mock_open:
            with pytest.raises(GatewayError) as exc_info:
                gateway.execute("prompt")
        assert mock_open.call_count == 5
        assert exc_info.value.kind == GatewayErrorKind.NETWORK_ERROR

    def test_exponential_backoff_delays(self) -> None:
        gateway, sleeps = _make_gateway(max_retries=3, retry_delay=1.0)
        with patch(
            "urllib.request.urlopen",
            side_effect=urllib.error.URLError("refused"),
        ):
            with pytest.raises(GatewayError):
                gateway.execute("prompt", backoff=BackoffMode.EXPONENTIAL)
        assert sleeps == [1.25, 2.25]

    def test_http_error_status(self) -> None:
        gateway, _ = _make_gateway(max_retries=1)
        error = urllib.error.HTTPError(
            f"{DEFAULT_OLLAMA_URL}/api/generate", 500, "Internal Server Error", {}, None
        )
        with patch("urllib.request.urlopen", side_effect=error):
            with pytest.raises(GatewayError) as exc_info:
                gateway.execute("prompt")
        assert exc_info.value.kind == GatewayErrorKind.SERVER_ERROR
        assert exc_info.value.status_code == 500
        assert exc_info.value.severity == Severity.HIGH

    def test_body_without_response_field(self) -> None:
        gateway, _ = _make_gateway(max_retries=2)
        with patch(
            "urllib.request.urlopen",
            side_effect=[_mock_urlopen({"done": True}), _mock_urlopen({"done": True})],
        ) as mock_open:
            with pytest.raises(GatewayError) as exc_info:
                gateway.execute("prompt")
        assert mock_open.call_count == 2
        assert exc_info.value.kind == GatewayErrorKind.RESPONSE_PARSING_ERROR

    def test_unparseable_body(self) -> None:
        gateway, _ = _make_gateway(max_retries=1)
        resp = _mock_urlopen({})
        resp.read.return_value = b"<html>not json</html>"
        with patch("urllib.request.urlopen", return_value=resp):
            with pytest.raises(GatewayError) as exc_info:
                gateway.execute("prompt")
        assert exc_info.value.kind == GatewayErrorKind.RESPONSE_PARSING_ERROR


class TestProbe:
    def test_model_found_with_tag(self) -> None:
        gateway, _ = _make_gateway(name="gemma3")
        resp = _mock_urlopen({"models": [{"name": "gemma3:latest"}]})
        with patch("urllib.request.urlopen", return_value=resp) as mock_open:
            assert gateway.probe() is True
        assert mock_open.call_args[0][0].full_url == f"{DEFAULT_OLLAMA_URL}/api/tags"
        assert gateway.is_available is True

    def test_model_missing(self) -> None:
        gateway, _ = _make_gateway(name="gemma3:4b")
        resp = _mock_urlopen({"models": [{"name": "llama3:latest"}]})
        with patch("urllib.request.urlopen", return_value=resp):
            assert gateway.probe() is False
        assert gateway.is_available is False
        assert gateway.last_error is not None
        assert gateway.last_error.kind == GatewayErrorKind.MODEL_UNAVAILABLE

    def test_connection_refused(self) -> None:
        gateway, _ = _make_gateway()
        with patch(
            "urllib.request.urlopen",
            side_effect=urllib.error.URLError("Connection refused"),
        ):
            assert gateway.probe() is False
        assert gateway.is_available is False

    def test_failed_probe_blocks_then_successful_probe_unblocks(self) -> None:
        gateway, _ = _make_gateway()
        with patch(
            "urllib.request.urlopen",
            side_effect=urllib.error.URLError("Connection refused"),
        ):
            gateway.probe()
        with pytest.raises(GatewayError):
            gateway.execute("prompt")

        with patch("urllib.request.urlopen", return_value=_mock_urlopen({"models": []})):
            assert gateway.probe() is True
        with patch("urllib.request.urlopen", return_value=_mock_urlopen({"response": "ok"})):
            assert gateway.execute("prompt") == "ok"


class TestNetwork:
    def test_unresolvable_host_marks_offline(self) -> None:
        gateway, _ = _make_gateway()
        with patch("socket.getaddrinfo", side_effect=OSError("no route")):
            assert gateway.check_network() is False
        assert gateway.network_available is False

    def test_coming_back_online_reprobes(self) -> None:
        gateway, _ = _make_gateway()
        gateway.network_available = False
        with patch.object(gateway, "probe", return_value=True) as mock_probe:
            gateway.set_network_available(True)
        mock_probe.assert_called_once()

    def test_staying_online_does_not_reprobe(self) -> None:
        gateway, _ = _make_gateway()
        with patch.object(gateway, "probe") as mock_probe:
            gateway.set_network_available(True)
        mock_probe.assert_not_called()
