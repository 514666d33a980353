"""
Pytest Configuration and Fixtures
"""
import json
from unittest.mock import Mock, patch

import fakeredis
import pytest
from mpesa_gateway import create_app
from mpesa_gateway.extensions import redis_client as _redis_client
from mpesa_gateway.models.payment import ProviderCredentials


@pytest.fixture(scope='session')
def app():
    """Create application for testing"""
    app = create_app('testing')

    # Establish application context
    ctx = app.app_context()
    ctx.push()

    yield app

    ctx.pop()


@pytest.fixture(scope="function")
def redis_client():
    """
    Fake Redis for tests + patch the app redis client.
    """
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)

    with patch.object(_redis_client, "client", fake_redis):
        yield fake_redis

    fake_redis.flushall()


@pytest.fixture(scope='function')
def client(app, redis_client):
    """Create a test client"""
    return app.test_client()


@pytest.fixture
def credentials():
    return ProviderCredentials(
        short_code="174379",
        pass_key="test_passkey",
        consumer_key="test_consumer_key",
        consumer_secret="test_consumer_secret",
        callback_url="https://example.com/mpesa/callback",
        environment="sandbox",
    )


def mock_http_response(json_data, status_code: int = 200) -> Mock:
    """Return a mock requests.Response whose .json() returns json_data."""
    resp = Mock()
    resp.ok = 200 <= status_code < 400
    resp.status_code = status_code
    resp.json.return_value = json_data
    resp.text = json.dumps(json_data)
    resp.headers = {"Content-Type": "application/json"}
    return resp


def mock_text_response(text: str, status_code: int = 200) -> Mock:
    """Mock requests.Response with a body that is not JSON."""
    resp = Mock()
    resp.ok = 200 <= status_code < 400
    resp.status_code = status_code
    resp.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
    resp.text = text
    return resp


def daraja_token_resp() -> Mock:
    """Valid Daraja OAuth token response (expires in ~1 hour)."""
    return mock_http_response({"access_token": "daraja_tok_abc", "expires_in": "3599"})
