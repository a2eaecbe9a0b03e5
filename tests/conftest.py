import logging

import pytest


@pytest.fixture(autouse=True)
def reset_azlab_logger():
    """The CLI attaches handlers to the package logger; drop them between tests."""
    yield
    logger = logging.getLogger("azlab")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
