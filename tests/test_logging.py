import logging

import pytest

from weighbridge.services.logging import LOGGER_NAME, setup_logging


@pytest.fixture
def clean_logger():
    logger = logging.getLogger(LOGGER_NAME)
    saved = list(logger.handlers), logger.level
    logger.handlers.clear()
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])


def test_setup_logging_writes_rotating_file(tmp_path, clean_logger):
    log_file = tmp_path / "station.log"
    logger = setup_logging(logging.DEBUG, log_file=log_file)
    assert logger is clean_logger
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 2

    logging.getLogger("weighbridge.engine").info("Weigh-in saved")
    for handler in logger.handlers:
        handler.flush()
    content = log_file.read_text(encoding="utf-8")
    assert "Logging initialised" in content
    assert "weighbridge.engine: Weigh-in saved" in content


def test_setup_logging_is_idempotent(tmp_path, clean_logger):
    setup_logging(log_file=tmp_path / "a.log")
    setup_logging(log_file=tmp_path / "b.log")
    assert len(clean_logger.handlers) == 2
    assert not (tmp_path / "b.log").exists()


def test_log_dir_from_environment(tmp_path, monkeypatch, clean_logger):
    monkeypatch.setenv("WEIGHBRIDGE_LOG_DIR", str(tmp_path / "logs"))
    setup_logging()
    assert (tmp_path / "logs" / "weighbridge.log").exists()
