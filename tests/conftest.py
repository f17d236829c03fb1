import logging

import pytest

from superthanks_logging import ROOT_LOGGER_NAME


@pytest.fixture(autouse=True)
def _reset_superthanks_logger():
    """Drop handlers bound to a previous test's (now closed) captured stderr."""
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)
    root.propagate = True
