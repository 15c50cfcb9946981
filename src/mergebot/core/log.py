"""Run logging on top of logfire.

Every record is a logfire span. The console is logfire's own output;
the per-run log file and the optional OTLP collector are extra span
processors, each filtered to its own level.
"""

from __future__ import annotations

import contextlib
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Any

from opentelemetry.proto.logs.v1 import logs_pb2
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
    SpanExportResult,
)
from pydantic import AfterValidator, Field, PrivateAttr, model_validator

from mergebot.core.base import BaseConfig

# Most severe first, so the first threshold a span reaches names it
SEVERITIES = {
    "fatal": logs_pb2.SEVERITY_NUMBER_FATAL,
    "error": logs_pb2.SEVERITY_NUMBER_ERROR,
    "warn": logs_pb2.SEVERITY_NUMBER_WARN,
    "info": logs_pb2.SEVERITY_NUMBER_INFO,
    "debug": logs_pb2.SEVERITY_NUMBER_DEBUG,
    "trace": logs_pb2.SEVERITY_NUMBER_TRACE3,
    "spew": logs_pb2.SEVERITY_NUMBER_TRACE,
}

# Attributes logfire and OpenTelemetry add on their own
_INTERNAL_PREFIXES = (
    "code.", "logfire.", "otel.", "telemetry.", "service.", "process.",
)

_ESCAPES = str.maketrans({
    "\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t",
})

_current_logger: Logger | None = None


def severity(level: str) -> int:
    return SEVERITIES.get(level.lower(), SEVERITIES["info"])


def level_name(number: int) -> str:
    for name, threshold in SEVERITIES.items():
        if number >= threshold:
            return name
    return "unknown"


def _span_severity(span: ReadableSpan) -> int:
    return (span.attributes or {}).get(
        "logfire.level_num", SEVERITIES["info"]
    )


def format_line(span: ReadableSpan, template: str, escape: bool = False) -> str:
    """Render one span as a log line.

    Template fields: timestamp, level, message, location, function.
    Attributes passed by the caller follow the message as key=value.
    """
    attrs = dict(span.attributes or {})
    message = str(attrs.get("logfire.msg", span.name))
    if escape:
        message = message.translate(_ESCAPES)

    filepath = attrs.get("code.filepath", "")
    fields = {
        "timestamp": datetime.fromtimestamp(span.start_time / 1e9, tz=UTC),
        "level": level_name(_span_severity(span)),
        "message": message,
        "location": f"{filepath}:{attrs.get('code.lineno', '')}" if filepath else "",
        "function": attrs.get("code.function", ""),
    }
    try:
        line = template.format(**fields)
    except KeyError as e:
        return f"ERROR: Invalid template field {e}\n"

    extra = sorted(
        (key, value)
        for key, value in attrs.items()
        if not key.startswith(_INTERNAL_PREFIXES)
    )
    if extra:
        line += " | " + " ".join(f"{key}={value!r}" for key, value in extra)
    return line + "\n"


class _LoggerProxy:
    """Forwards attribute access to the configured logger.

    Until setup_logger() runs every call is a no-op, so modules can
    log at import time and in unit tests without configuration.
    """

    def __getattr__(self, name):
        if _current_logger is None:
            def _noop(*args, **kwargs):  # noqa: ARG001
                return contextlib.nullcontext()
            return _noop
        return getattr(_current_logger, name)

    def __enter__(self):
        if _current_logger is None:
            return self
        return _current_logger.__enter__()

    def __exit__(self, *args):
        if _current_logger is None:
            return False
        return _current_logger.__exit__(*args)


logger = _LoggerProxy()


class LevelFilteringExporter(SpanExporter):
    """Drops spans below a level before they reach the wrapped exporter."""

    def __init__(self, exporter: SpanExporter, min_level: str):
        self._exporter = exporter
        self.min_severity = severity(min_level)

    def export(self, spans) -> SpanExportResult:
        kept = [s for s in spans if _span_severity(s) >= self.min_severity]
        if not kept:
            return SpanExportResult.SUCCESS
        return self._exporter.export(kept)

    def shutdown(self) -> None:
        self._exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._exporter.force_flush(timeout_millis)


def _check_level(value: str) -> str:
    if value.lower() not in SEVERITIES:
        raise ValueError(
            f"Unknown log level {value!r}; "
            f"expected one of {', '.join(reversed(SEVERITIES))}"
        )
    return value.lower()


LevelName = Annotated[str, AfterValidator(_check_level)]


class Sink(BaseConfig):
    """One log destination.

    A sink without its own level takes Logger.level.
    """

    enabled: bool = Field(default=True, description="Enable this sink")
    level: LevelName | None = Field(
        default=None,
        description="Minimum level for this sink (spew..fatal)",
    )

    _processor: Any = PrivateAttr(default=None)

    def create_processor(self, log_root: Path, run_name: str):
        """Span processor for this sink, or None when logfire drives
        the output itself."""
        return None

    def close(self):
        if self._processor is not None:
            self._processor.shutdown()
            self._processor = None


class ConsoleSink(Sink):
    """logfire's console output on stdout."""

    verbose: bool = Field(default=False, description="Show span details")
    colors: str = Field(
        default="auto", description="Color mode: auto, always, never"
    )

    def options(self):
        from logfire import ConsoleOptions

        if not self.enabled:
            return False
        # logfire's console has nothing below trace
        level = "trace" if self.level == "spew" else self.level or "info"
        return ConsoleOptions(
            min_log_level=level,
            verbose=self.verbose,
            colors=self.colors,
            include_timestamps=True,
        )


class FileSink(Sink):
    """Plain text log of one run."""

    enabled: bool = Field(default=False, description="Enable file logging")
    path: str = Field(
        default="{log_root}/{run_name}/mergebot.log",
        description="Log file path; {log_root} and {run_name} are filled in",
    )
    format_template: str = Field(
        default="{timestamp:%Y-%m-%d %H:%M:%S} {level:<5} {message}",
        description="Line format (timestamp, level, message, location, function)",
    )
    escape_special_characters: bool = Field(
        default=False,
        description="Write newlines and tabs in messages as \\n and \\t",
    )

    _file: Any = PrivateAttr(default=None)

    def log_path(self, log_root: Path, run_name: str) -> Path:
        return Path(self.path.format(log_root=log_root, run_name=run_name))

    def format(self, span: ReadableSpan) -> str:
        return format_line(
            span, self.format_template, self.escape_special_characters
        )

    def create_processor(self, log_root: Path, run_name: str):
        path = self.log_path(log_root, run_name)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Line buffered so a crashed run still leaves its log behind
        self._file = open(path, "a", buffering=1, encoding="utf-8")  # noqa: SIM115

        exporter = ConsoleSpanExporter(out=self._file, formatter=self.format)
        return BatchSpanProcessor(
            LevelFilteringExporter(exporter, self.level or "info")
        )

    def close(self):
        """Flush pending spans into the file, then close it."""
        super().close()
        if self._file is not None and not self._file.closed:
            self._file.close()


class OTLPSink(Sink):
    """Exports spans to an OpenTelemetry collector over gRPC."""

    enabled: bool = Field(default=False, description="Enable OTLP export")
    endpoint: str = Field(
        default="http://localhost:4317", description="OTLP gRPC endpoint"
    )
    insecure: bool = Field(default=True, description="Connect without TLS")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Extra request headers"
    )

    def create_processor(self, log_root: Path, run_name: str):
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        exporter = OTLPSpanExporter(
            endpoint=self.endpoint,
            insecure=self.insecure,
            headers=self.headers or None,
        )
        return BatchSpanProcessor(
            LevelFilteringExporter(exporter, self.level or "info")
        )


class Logger(BaseConfig):
    """Configured sinks plus the level methods the code logs through.

    close() runs through the BaseCloseable cascade, so leaving the
    logger's context flushes and closes the file even when a run fails.
    """

    level: LevelName = Field(
        default="info",
        description="Default level for sinks without their own (spew..fatal)",
    )
    console: ConsoleSink = Field(default_factory=ConsoleSink)
    file: FileSink = Field(default_factory=FileSink)
    otlp: OTLPSink = Field(default_factory=OTLPSink)

    @model_validator(mode="after")
    def _cascade_level_to_sinks(self) -> Logger:
        for sink in self.sinks():
            if sink.level is None:
                sink.level = self.level
        return self

    def sinks(self) -> list[Sink]:
        return [self.console, self.file, self.otlp]

    def setup(self, log_root: Path, run_name: str):
        """Open the enabled sinks and hand them to logfire."""
        import logfire

        processors = []
        for sink in self.sinks():
            if sink.enabled:
                sink._processor = sink.create_processor(log_root, run_name)
                if sink._processor is not None:
                    processors.append(sink._processor)

        logfire.configure(
            service_name=f"mergebot-{run_name}",
            send_to_logfire=False,
            console=self.console.options(),
            additional_span_processors=processors or None,
        )

    def emit(self, level: str, msg: str, **kwargs):
        import logfire
        logfire.log(severity(level), msg, attributes=kwargs or None)

    def spew(self, msg: str, **kwargs):
        """Subprocess plumbing, below trace."""
        self.emit("spew", msg, **kwargs)

    def trace(self, msg: str, **kwargs):
        self.emit("trace", msg, **kwargs)

    def debug(self, msg: str, **kwargs):
        self.emit("debug", msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self.emit("info", msg, **kwargs)

    def warn(self, msg: str, **kwargs):
        self.emit("warn", msg, **kwargs)

    warning = warn

    def error(self, msg: str, **kwargs):
        self.emit("error", msg, **kwargs)

    def span(self, msg: str, **kwargs):
        """Span around one workflow step."""
        import logfire
        return logfire.span(msg, **kwargs)


def setup_logger(
    log_root: Path,
    run_name: str,
    level: str = "info",
    console: ConsoleSink | None = None,
    file: FileSink | None = None,
    otlp: OTLPSink | None = None,
) -> Logger:
    """Replace the global logger.

    Config calls this once its settings have loaded; tests call it
    directly. The previous logger is closed first so its file is
    flushed.
    """
    global _current_logger

    if _current_logger is not None:
        _current_logger.close()

    _current_logger = Logger(
        level=level,
        console=console or ConsoleSink(),
        file=file or FileSink(),
        otlp=otlp or OTLPSink(),
    )
    _current_logger.setup(log_root, run_name)
    return _current_logger
