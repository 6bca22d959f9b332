import logging

import pytest

from foldly_tree import logging_config
from foldly_tree.logging_config import setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in saved_handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(saved_level)
    for name in logging_config._MUTATION_LOGGERS + ("foldly_tree.extra",):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True


def test_setup_logging_writes_to_log_dir(tmp_path, monkeypatch, restore_logging):
    monkeypatch.setenv("FOLDLY_LOG_DIR", str(tmp_path / "logs"))

    setup_logging()
    logging.getLogger("foldly_tree.test").info("hello")

    assert (tmp_path / "logs" / "foldly_tree.log").exists()


def test_debug_overrides(tmp_path, monkeypatch, restore_logging):
    monkeypatch.setenv("FOLDLY_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("FOLDLY_DEBUG_MUTATIONS", "true")
    monkeypatch.setenv("FOLDLY_DEBUG_MODULES", "foldly_tree.extra")

    setup_logging()

    for name in logging_config._MUTATION_LOGGERS + ("foldly_tree.extra",):
        assert logging.getLogger(name).level == logging.DEBUG


def test_minimal_fallback_without_config(tmp_path, monkeypatch, restore_logging):
    monkeypatch.setenv("FOLDLY_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr(
        logging_config.ConfigManager, "get_logging_config", lambda self: {}
    )

    setup_logging()

    assert logging.getLogger().level == logging.INFO
