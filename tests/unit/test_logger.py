"""Unit tests for logging setup."""

import logging

import pytest

from utils.logger import HTTP_LOGGER_NAME, ROOT_LOGGER_NAME, get_logger, setup_logging


@pytest.fixture(autouse=True)
def reset_handlers():
    yield
    for name in (ROOT_LOGGER_NAME, HTTP_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
    logging.getLogger(HTTP_LOGGER_NAME).propagate = True


def test_setup_logging_writes_debug_to_file(tmp_path):
    log_file = setup_logging(log_dir=tmp_path, console=False)

    get_logger('core.resolver').debug('skipping feature 12')
    for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
        handler.flush()

    assert log_file.parent == tmp_path
    assert log_file.name.startswith('proximity_')
    assert 'skipping feature 12' in log_file.read_text(encoding='utf-8')


def test_repeated_setup_does_not_duplicate_handlers(tmp_path):
    setup_logging(log_dir=tmp_path)
    setup_logging(log_dir=tmp_path)

    assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == 2
    assert len(logging.getLogger(HTTP_LOGGER_NAME).handlers) == 1


def test_get_logger_nests_under_root():
    assert get_logger('core.arcgis_query').name == 'proximity.core.arcgis_query'
