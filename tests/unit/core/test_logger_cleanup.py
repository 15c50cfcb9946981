"""Tests for logger cleanup cascade via BaseCloseable."""


import pytest

from mergebot.core.log import ConsoleSink, FileSink, Logger, OTLPSink


def _logger(tmp_path, name="test.log"):
    return Logger(
        console=ConsoleSink(enabled=False),
        file=FileSink(enabled=True, path=str(tmp_path / name)),
        otlp=OTLPSink(enabled=False),
    )


def test_logger_closes_file_via_context_manager(tmp_path):
    """Test that logger closes files when used as context manager."""
    logger = _logger(tmp_path)
    logger.setup(log_root=tmp_path, run_name="test")

    assert logger.file._file is not None
    assert not logger.file._file.closed

    with logger:
        logger.info("test message")

    assert logger.file._file.closed


def test_logger_closes_on_exception(tmp_path):
    """Test that logger closes files even when exception occurs."""
    logger = _logger(tmp_path)
    logger.setup(log_root=tmp_path, run_name="test")

    with pytest.raises(ValueError), logger:
        logger.info("before exception")
        raise ValueError("test exception")

    assert logger.file._file.closed


def test_config_cascade_closes_logger(tmp_path):
    """Test Config.close() cascades to Logger then Sink.close()."""
    from mergebot.core.config import Config, GitConfig

    config = Config(
        logger=Logger(
            console=ConsoleSink(enabled=False),
            file=FileSink(enabled=True, path=str(tmp_path / "cascade.log")),
            otlp=OTLPSink(enabled=False),
        ),
        git=GitConfig(workdir=tmp_path),
        log_root=tmp_path,
        run_name="cascade",
    )

    # The validator set up the global logger from this config
    assert config.logger.file._file is not None
    assert not config.logger.file._file.closed

    config.close()

    assert config.logger.file._file.closed


def test_sinks_without_files_close_cleanly(tmp_path):
    """Console and disabled sinks have nothing to release."""
    logger = Logger(
        console=ConsoleSink(enabled=True),
        file=FileSink(enabled=False),
        otlp=OTLPSink(enabled=False),
    )
    logger.setup(log_root=tmp_path, run_name="console-only")

    logger.close()

    assert logger.file._file is None
