"""Tests for the OTLP sink, level filtering and log line formatting."""

import pytest
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from pydantic import ValidationError

from mergebot.core.log import (
    SEVERITIES,
    ConsoleSink,
    FileSink,
    LevelFilteringExporter,
    Logger,
    OTLPSink,
    format_line,
    level_name,
)


class RecordingExporter(SpanExporter):
    """Keeps exported spans in memory."""

    def __init__(self):
        self.spans = []
        self.shut_down = False

    def export(self, spans):
        self.spans.extend(spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        self.shut_down = True


def _span(message, level="info", **attributes):
    return ReadableSpan(
        name=message,
        attributes={
            "logfire.msg": message,
            "logfire.level_num": SEVERITIES[level],
            "code.filepath": "mergebot/git/merge.py",
            "code.lineno": 42,
            **attributes,
        },
        start_time=0,
    )


def test_filtering_exporter_drops_lower_levels():
    recorder = RecordingExporter()
    exporter = LevelFilteringExporter(recorder, "warn")

    exporter.export([
        _span("fetched", "debug"),
        _span("merged", "info"),
        _span("lock kept", "warn"),
        _span("push failed", "error"),
    ])
    exporter.shutdown()

    assert [s.name for s in recorder.spans] == ["lock kept", "push failed"]
    assert recorder.shut_down


def test_level_names():
    assert level_name(SEVERITIES["spew"]) == "spew"
    assert level_name(SEVERITIES["trace"]) == "trace"
    assert level_name(SEVERITIES["warn"] + 1) == "warn"
    assert level_name(0) == "unknown"


def test_format_line_appends_caller_attributes():
    span = _span("Merged release", branch="main", conflicts=2)

    line = format_line(span, "{level} {location} {message}")

    assert line == (
        "info mergebot/git/merge.py:42 Merged release"
        " | branch='main' conflicts=2\n"
    )


def test_format_line_escapes_control_characters():
    span = _span("a.txt\tBOTH_MODIFIED\nb.txt")

    assert format_line(span, "{message}", escape=True) == (
        "a.txt\\tBOTH_MODIFIED\\nb.txt\n"
    )


def test_format_line_reports_unknown_fields():
    assert format_line(_span("x"), "{thread} {message}") == (
        "ERROR: Invalid template field 'thread'\n"
    )


def test_unknown_level_is_rejected():
    with pytest.raises(ValidationError, match="Unknown log level"):
        FileSink(level="verbose")
    with pytest.raises(ValidationError, match="Unknown log level"):
        Logger(level="loud")


def test_levels_are_case_insensitive():
    assert OTLPSink(level="WARN").level == "warn"


def test_sinks_inherit_logger_level():
    logger = Logger(level="debug", file=FileSink(level="error"))

    assert logger.console.level == "debug"
    assert logger.otlp.level == "debug"
    assert logger.file.level == "error"


def test_otlp_sink_creates_batch_processor(tmp_path):
    sink = OTLPSink(
        enabled=True,
        level="info",
        endpoint="http://collector.invalid:4317",
        headers={"x-team": "merge"},
    )

    processor = sink.create_processor(tmp_path, "run")

    assert isinstance(processor, BatchSpanProcessor)
    processor.shutdown()


def test_enabled_otlp_sink_is_registered_and_closed(tmp_path):
    logger = Logger(
        console=ConsoleSink(enabled=False),
        otlp=OTLPSink(enabled=True, endpoint="http://collector.invalid:4317"),
    )
    logger.setup(log_root=tmp_path, run_name="otlp")

    assert isinstance(logger.otlp._processor, BatchSpanProcessor)
    assert logger.file._processor is None

    logger.close()

    assert logger.otlp._processor is None


def test_otlp_settings_load_from_config(tmp_path, mock_argv):
    from mergebot.core.config import State

    state = State(config={
        "log_root": str(tmp_path),
        "logger": {
            "otlp": {"endpoint": "http://collector:4317", "level": "warn"},
        },
    })

    otlp = state.config.logger.otlp
    assert otlp.enabled is False
    assert otlp.endpoint == "http://collector:4317"
    assert otlp.level == "warn"
