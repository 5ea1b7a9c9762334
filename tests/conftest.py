import os
import sys
from copy import deepcopy
from unittest.mock import MagicMock

import pytest
from pytest import MonkeyPatch

# Put src/app on sys.path so main and airnode resolve like they do at runtime
sys.path.insert(
    0, os.path.abspath(path=os.path.join(os.path.dirname(__file__), "..", "src/app"))
)

# Put the interpreter at the right place to resolve payload/ files
os.chdir(os.path.dirname(__file__))

os.environ["ENV"] = "test"

import main
from main import exit_event, latest
from .static import EXAMPLE_CONFIG


@pytest.fixture(autouse=True)
def clear_latest():
    """
    Empty the latest readings registry before each test.
    """
    latest.clear()
    yield


@pytest.fixture(autouse=True)
def exit_event_unset():
    """
    Clear the stop event before each test.
    """
    exit_event.clear()
    yield


@pytest.fixture
def mock_config():
    main.config.clear()
    main.config.update(deepcopy(EXAMPLE_CONFIG))


@pytest.fixture
def mock_outputs(monkeypatch: MonkeyPatch):
    """Replace both outputs, returns (mqtt_mock, http_mock)."""
    mqtt_mock = MagicMock(return_value=True)
    http_mock = MagicMock(return_value=True)
    monkeypatch.setattr(main, "send_mqtt_message", mqtt_mock)
    monkeypatch.setattr(main, "send_http_request", http_mock)
    return mqtt_mock, http_mock


@pytest.fixture
def flask_client(mock_config):
    main.flask_app.config["TESTING"] = True
    return main.flask_app.test_client()
