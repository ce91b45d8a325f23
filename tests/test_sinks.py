"""Log sink tests."""

from __future__ import annotations

import logging
from unittest import mock

import pytest

from fork_runner.config import Config
from fork_runner.sinks import create_sink
from fork_runner.sinks.base import LogRecord, LogSink, StreamName, post_record
from fork_runner.sinks.console import RECORD_LOGGER_NAME, ConsoleLogSink
from fork_runner.sinks.fluent import FluentLogSink, FluentSettings
from fork_runner.sinks.memory import MemoryLogSink


class TestLogRecord:
    """LogRecord conversions."""

    def test_to_fields(self):
        record = LogRecord("abc", StreamName.STDERR, "boom")

        assert record.to_fields() == {"pipe": "stderr", "message": "boom"}

    def test_from_post(self):
        record = LogRecord.from_post("abc", {"pipe": "stdout", "message": "hi"})

        assert record == LogRecord("abc", StreamName.STDOUT, "hi")

    def test_post_record(self):
        sink = mock.Mock()

        post_record(sink, LogRecord("abc", StreamName.CONTROL, "done"))

        sink.post.assert_called_once_with("abc", {"pipe": "control", "message": "done"})


class TestMemoryLogSink:
    """MemoryLogSink behaviour."""

    def test_satisfies_protocol(self):
        assert isinstance(MemoryLogSink(), LogSink)

    def test_records_filtered_by_trace_and_stream(self):
        sink = MemoryLogSink()
        sink.post("a", {"pipe": "stdout", "message": "1"})
        sink.post("b", {"pipe": "stdout", "message": "2"})
        sink.post("a", {"pipe": "stderr", "message": "3"})

        assert [r.message for r in sink.records_for("a")] == ["1", "3"]
        assert sink.messages("a", StreamName.STDERR) == ["3"]
        assert len(sink) == 3

    def test_clear_and_close(self):
        sink = MemoryLogSink()
        sink.post("a", {"pipe": "stdout", "message": "1"})

        sink.clear()
        sink.close()

        assert len(sink) == 0
        assert sink.closed


class TestConsoleLogSink:
    """ConsoleLogSink behaviour."""

    def test_post_logs_line(self, caplog: pytest.LogCaptureFixture):
        sink = ConsoleLogSink()

        with caplog.at_level(logging.INFO, logger=RECORD_LOGGER_NAME):
            sink.post("abc", {"pipe": "stdout", "message": "hello"})

        assert "[abc] stdout: hello" in caplog.text

    def test_custom_logger_and_level(self):
        target = mock.Mock(spec=logging.Logger)
        target.handlers = []
        sink = ConsoleLogSink(target, level=logging.DEBUG)

        sink.post("abc", {"pipe": "control", "message": "x"})
        sink.close()

        target.log.assert_called_once_with(logging.DEBUG, "[%s] %s: %s", "abc", "control", "x")


class TestFluentLogSink:
    """FluentLogSink with a fake sender."""

    def test_post_emits_with_trace_id_label(self):
        fake_sender = mock.Mock()
        fake_sender.emit.return_value = True
        sink = FluentLogSink(fluent_sender=fake_sender)

        sink.post("abc", {"pipe": "stdout", "message": "hi"})

        fake_sender.emit.assert_called_once_with("abc", {"pipe": "stdout", "message": "hi"})
        fake_sender.clear_last_error.assert_not_called()

    def test_failed_emit_is_logged_and_cleared(self, caplog: pytest.LogCaptureFixture):
        fake_sender = mock.Mock()
        fake_sender.emit.return_value = False
        fake_sender.last_error = ConnectionRefusedError("refused")
        sink = FluentLogSink(fluent_sender=fake_sender)

        sink.post("abc", {"pipe": "stdout", "message": "hi"})

        assert "Fluent emit failed for tag=abc" in caplog.text
        fake_sender.clear_last_error.assert_called_once()

    def test_emit_exception_is_absorbed(self, caplog: pytest.LogCaptureFixture):
        fake_sender = mock.Mock()
        fake_sender.emit.side_effect = OSError("socket gone")
        sink = FluentLogSink(fluent_sender=fake_sender)

        sink.post("abc", {"pipe": "stdout", "message": "hi"})

        assert "socket gone" in caplog.text

    def test_close_closes_sender(self):
        fake_sender = mock.Mock()
        sink = FluentLogSink(fluent_sender=fake_sender)

        sink.close()

        fake_sender.close.assert_called_once()

    def test_async_mode_uses_async_sender(self):
        settings = FluentSettings(host="collector", port=24225, tag_prefix="fn", timeout=1.0)

        with mock.patch("fork_runner.sinks.fluent.asyncsender") as async_module:
            FluentLogSink(settings)

        async_module.FluentSender.assert_called_once_with(
            "fn",
            host="collector",
            port=24225,
            timeout=1.0,
            queue_circular=False,
        )

    def test_sync_mode_uses_plain_sender(self):
        settings = FluentSettings(async_mode=False)

        with mock.patch("fork_runner.sinks.fluent.sender") as sync_module:
            FluentLogSink(settings)

        sync_module.FluentSender.assert_called_once_with(
            "watchdog",
            host="localhost",
            port=24224,
            timeout=3.0,
        )


class TestCreateSink:
    """Sink factory."""

    def test_console(self):
        assert isinstance(create_sink(Config(log_sink="console")), ConsoleLogSink)

    def test_memory(self):
        assert isinstance(create_sink(Config(log_sink="memory")), MemoryLogSink)

    def test_fluent(self):
        config = Config(log_sink="fluent", fluent_host="collector", fluent_tag_prefix="fn")

        with mock.patch("fork_runner.sinks.fluent.asyncsender") as async_module:
            sink = create_sink(config)

        assert isinstance(sink, FluentLogSink)
        assert sink.settings.host == "collector"
        assert sink.settings.tag_prefix == "fn"
        async_module.FluentSender.assert_called_once()
