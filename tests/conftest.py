import logging
from unittest.mock import MagicMock

import pytest

from .utils import make_sink


@pytest.fixture
def log():
    return logging.getLogger("tests.controller")


@pytest.fixture
def sink():
    return make_sink()


@pytest.fixture
def custom_api():
    return MagicMock()


@pytest.fixture
def core_api():
    return MagicMock()
