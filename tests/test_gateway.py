# tests/test_gateway.py
"""Unit tests for CloudConvertGateway with the requests session mocked out."""

from unittest.mock import MagicMock

import pytest
import requests

from convert_service.conversion.adapters import CloudConvertGateway
from convert_service.conversion.errors import ProviderError


def _response(status_code=200, json_data=None, content=b"", reason="OK"):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.reason = reason
    resp.content = content
    if json_data is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_data
    return resp


def _gateway(*responses, api_key="secret"):
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = list(responses)
    return CloudConvertGateway(api_key, base_url="https://api.example/v2/", timeout=5, session=session), session


def test_create_job_posts_tasks_with_bearer_auth():
    gateway, session = _gateway(_response(201, {"data": {"id": "r1", "status": "waiting", "tasks": []}}))
    job = gateway.create_job({"import-file": {"operation": "import/upload"}}, tag="job-1")

    assert job["id"] == "r1"
    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert (method, url) == ("POST", "https://api.example/v2/jobs")
    assert kwargs["json"] == {"tasks": {"import-file": {"operation": "import/upload"}}, "tag": "job-1"}
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert kwargs["timeout"] == 5


def test_get_job_unwraps_data():
    gateway, session = _gateway(_response(200, {"data": {"id": "r1", "status": "finished"}}))
    assert gateway.get_job("r1") == {"id": "r1", "status": "finished"}
    assert session.request.call_args.args == ("GET", "https://api.example/v2/jobs/r1")


def test_upload_sends_form_parameters_and_file():
    gateway, session = _gateway(_response(201))
    task = {"result": {"form": {"url": "https://upload.example/r1", "parameters": {"expires": "9", "signature": "s"}}}}
    gateway.upload(task, "notes.txt", b"hello")

    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert (method, url) == ("POST", "https://upload.example/r1")
    assert kwargs["data"] == {"expires": "9", "signature": "s"}
    assert kwargs["files"]["file"][:2] == ("notes.txt", b"hello")
    assert "headers" not in kwargs


def test_upload_without_form_fails():
    gateway, _ = _gateway()
    with pytest.raises(ProviderError):
        gateway.upload({"result": {}}, "a.txt", b"")


def test_download_returns_body():
    gateway, _ = _gateway(_response(200, content=b"extracted text"))
    assert gateway.download("https://storage.example/r1/a.txt") == b"extracted text"


def test_http_error_carries_provider_message_and_status():
    gateway, _ = _gateway(_response(422, {"message": "The output format is not supported"}, reason="Unprocessable"))
    with pytest.raises(ProviderError) as exc:
        gateway.create_job({})
    assert exc.value.status_code == 422
    assert "The output format is not supported" in exc.value.message
    assert exc.value.message.startswith("job creation failed: 422")


def test_network_error_becomes_provider_error():
    gateway, _ = _gateway(requests.ConnectionError("connection refused"))
    with pytest.raises(ProviderError) as exc:
        gateway.get_job("r1")
    assert "connection refused" in exc.value.message


def test_missing_credential_fails_before_any_request():
    gateway, session = _gateway(api_key=None)
    with pytest.raises(ProviderError, match="credential"):
        gateway.create_job({})
    session.request.assert_not_called()


def test_upload_puts_raw_bytes_when_task_has_only_a_url():
    gateway, session = _gateway(_response(200))
    gateway.upload({"result": {"url": "https://upload.example/put/r1"}}, "notes.txt", b"hello")

    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert (method, url) == ("PUT", "https://upload.example/put/r1")
    assert kwargs["data"] == b"hello"
    assert kwargs["headers"] == {"Content-Type": "application/octet-stream"}
    assert "files" not in kwargs
