"""Tests for the error taxonomy and the logging error sink."""

import logging
from pathlib import Path

from fishbowl.errors import (
    CodecError,
    CodecErrorKind,
    ErrorReport,
    FishbowlError,
    GatewayError,
    GatewayErrorKind,
    LoggingErrorSink,
    PersistenceError,
    PersistenceErrorKind,
    Severity,
    as_fishbowl_error,
)


class TestGatewayError:
    def test_categories_and_severity(self) -> None:
        error = GatewayError(GatewayErrorKind.MODEL_UNAVAILABLE)
        assert error.category == "gateway"
        assert error.severity == Severity.HIGH
        assert "not available" in str(error)

    def test_server_error_severity_by_status(self) -> None:
        assert GatewayError(GatewayErrorKind.SERVER_ERROR, status_code=503).severity == Severity.HIGH
        assert (
            GatewayError(GatewayErrorKind.SERVER_ERROR, status_code=404).severity
            == Severity.MEDIUM
        )

    def test_detail_in_message(self) -> None:
        error = GatewayError(GatewayErrorKind.NETWORK_ERROR, "Connection refused")
        assert str(error) == "Network error: Connection refused"
        assert error.severity == Severity.MEDIUM

    def test_invalid_request_is_low(self) -> None:
        assert GatewayError(GatewayErrorKind.INVALID_REQUEST).severity == Severity.LOW


class TestOtherErrors:
    def test_codec_error(self) -> None:
        error = CodecError(CodecErrorKind.MALFORMED, "no JSON")
        assert error.category == "codec"
        assert error.kind == CodecErrorKind.MALFORMED
        assert error.severity == Severity.MEDIUM
        assert str(error) == "malformed: no JSON"

    def test_persistence_error(self, tmp_path) -> None:
        error = PersistenceError(PersistenceErrorKind.WRITE_FAILED, tmp_path / "x.json")
        assert error.category == "persistence"
        assert error.severity == Severity.HIGH
        assert error.path == tmp_path / "x.json"
        read = PersistenceError(PersistenceErrorKind.READ_FAILED, tmp_path / "x.json")
        assert read.severity == Severity.MEDIUM

    def test_user_message_scrubs_paths(self) -> None:
        path = Path.home() / "Documents" / "fishbowl" / "theme_index.json"
        error = PersistenceError(PersistenceErrorKind.WRITE_FAILED, path, "disk full")
        assert str(Path.home()) not in error.user_message
        assert "theme_index.json" not in error.user_message
        assert "disk full" in error.user_message

    def test_wrap_unexpected(self) -> None:
        wrapped = as_fishbowl_error(KeyError("boom"))
        assert isinstance(wrapped, FishbowlError)
        assert wrapped.kind == "unexpected"
        assert wrapped.category == "unknown"
        assert wrapped.severity == Severity.HIGH

    def test_wrap_passthrough(self) -> None:
        error = CodecError(CodecErrorKind.MISSING_FIELD)
        assert as_fishbowl_error(error) is error


class TestLoggingErrorSink:
    def test_logs_at_severity_level(self, caplog) -> None:
        sink = LoggingErrorSink()
        with caplog.at_level(logging.INFO, logger="fishbowl.errors"):
            sink.report(GatewayError(GatewayErrorKind.INVALID_REQUEST), context="daily analysis")
            sink.report(GatewayError(GatewayErrorKind.MODEL_UNAVAILABLE))

        levels = [r.levelno for r in caplog.records]
        assert levels == [logging.INFO, logging.ERROR]
        assert "daily analysis" in caplog.records[0].getMessage()

    def test_history_bounded(self) -> None:
        sink = LoggingErrorSink(history_size=2)
        for kind in (
            CodecErrorKind.MALFORMED,
            CodecErrorKind.MISSING_FIELD,
            CodecErrorKind.SCHEMA_MISMATCH,
        ):
            sink.report(CodecError(kind))
        history = sink.history
        assert [r.kind for r in history] == ["missing_field", "schema_mismatch"]
        assert all(isinstance(r, ErrorReport) for r in history)

    def test_clear(self) -> None:
        sink = LoggingErrorSink()
        sink.report(CodecError(CodecErrorKind.MALFORMED))
        sink.clear()
        assert sink.history == []
