import sys

import pytest
from loguru import logger


@pytest.fixture(autouse=True)
def _reset_loguru():
    # the CLI swaps loguru sinks; put the default stderr sink back after each test
    yield
    logger.remove()
    logger.add(sys.stderr)
