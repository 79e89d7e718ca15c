"""Tests for the remote backend client; requests.Session is mocked throughout"""

from unittest.mock import MagicMock

import pytest
import requests

from intake_app.sync.client import (
    BackendClient,
    BackendError,
    BackendUnreachableError,
    InvalidCredentialsError,
    remote_to_payload,
)


def _response(status_code=200, json_data=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = text
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session):
    return BackendClient("https://backend.example.org/api/", timeout=3.0, session=session)


class TestAuthenticate:
    def test_stores_token_and_sends_it_afterwards(self, client, session):
        session.request.side_effect = [
            _response(json_data={"token": "abc123", "user": {"username": "operator"}}),
            _response(json_data=[{"id": "APP-1"}]),
        ]

        client.authenticate("operator", "secret")
        applications = client.fetch_applications()

        assert applications == [{"id": "APP-1"}]
        login_call, fetch_call = session.request.call_args_list
        assert login_call.args == ("POST", "https://backend.example.org/api/auth/login")
        assert login_call.kwargs["json"] == {"username": "operator", "password": "secret"}
        assert "Authorization" not in login_call.kwargs["headers"]
        assert fetch_call.kwargs["headers"]["Authorization"] == "Bearer abc123"
        assert fetch_call.kwargs["timeout"] == 3.0

    def test_rejected_login(self, client, session):
        session.request.return_value = _response(401, {"error": "Invalid credentials"})

        with pytest.raises(InvalidCredentialsError) as excinfo:
            client.authenticate("operator", "wrong")

        assert excinfo.value.status_code == 401
        assert client.token is None

    def test_login_without_token(self, client, session):
        session.request.return_value = _response(json_data={"user": {}})

        with pytest.raises(BackendError):
            client.authenticate("operator", "secret")


class TestFailures:
    @pytest.mark.parametrize("error", [requests.Timeout("slow"), requests.ConnectionError("refused")])
    def test_unreachable_backend(self, client, session, error):
        session.request.side_effect = error

        with pytest.raises(BackendUnreachableError):
            client.fetch_applications()

    def test_server_error_message_from_body(self, client, session):
        session.request.return_value = _response(500, {"error": "Database unavailable"})

        with pytest.raises(BackendError) as excinfo:
            client.fetch_applications()

        assert str(excinfo.value) == "Database unavailable"
        assert excinfo.value.status_code == 500

    def test_server_error_without_json(self, client, session):
        session.request.return_value = _response(502, ValueError("no json"), text="Bad Gateway")

        with pytest.raises(BackendError, match="Bad Gateway"):
            client.fetch_applications()

    def test_non_list_payload(self, client, session):
        session.request.return_value = _response(json_data={"applications": []})

        with pytest.raises(BackendError):
            client.fetch_applications()


def test_check_application_exists_quotes_id(client, session):
    session.request.return_value = _response(json_data={"exists": True})

    assert client.check_application_exists("APP/2024 1") is True
    assert session.request.call_args.args[1] == "https://backend.example.org/api/applications/APP%2F2024%201/exists"


def test_from_config_requires_url():
    with pytest.raises(ValueError):
        BackendClient.from_config({"SYNC_BACKEND_URL": ""})

    client = BackendClient.from_config({"SYNC_BACKEND_URL": "http://backend.test", "SYNC_TIMEOUT_SECONDS": "7"})
    assert client.timeout == 7.0


def test_remote_to_payload_maps_camel_case():
    payload = remote_to_payload(
        {"id": "APP-1", "applicantName": "Asha Rao", "phonePrimary": "9876543210", "city": "Pune", "extra": 1}
    )

    assert payload == {"id": "APP-1", "applicant_name": "Asha Rao", "phone_primary": "9876543210", "city": "Pune"}
