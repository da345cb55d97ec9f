import logging

import pytest
import structlog


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo CLI logging setup so handlers never outlive a test's streams."""
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    logging.getLogger("mdweave").setLevel(logging.NOTSET)
