import base64
import json

import pytest
import requests

from services.azure_devops_service import AzureDevOpsAuthenticationError, AzureDevOpsService
from services.settings import FieldNames, Relations


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or json.dumps(payload)

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise json.JSONDecodeError("Expecting value", self.text, 0)
        return self._payload


def work_item_payload(item_id, work_item_type="Task", children=()):
    return {
        "id": item_id,
        "fields": {FieldNames.WORK_ITEM_TYPE: work_item_type, FieldNames.TITLE: f"Item {item_id}"},
        "relations": [
            {"rel": Relations.CHILDREN, "url": f"https://dev.azure.com/org/_apis/wit/workItems/{child}"}
            for child in children
        ],
    }


@pytest.fixture
def service():
    return AzureDevOpsService("secret-pat", "https://dev.azure.com/org/", timeout=5, max_batch_size=3)


def test_authorization_header_encodes_pat(service):
    expected = base64.b64encode(b":secret-pat").decode("utf-8")

    assert service.headers["Authorization"] == f"Basic {expected}"
    assert service.base_url == "https://dev.azure.com/org/_apis"


def test_get_work_item_requests_fields(monkeypatch, service):
    calls = []

    def fake_get(url, headers=None, params=None, timeout=None):
        calls.append((url, params, timeout))
        return FakeResponse(payload=work_item_payload(7))

    monkeypatch.setattr(requests, "get", fake_get)

    item = service.get_work_item(7, [FieldNames.TITLE, FieldNames.REPORTING_INFO])

    assert item.id == 7
    url, params, timeout = calls[0]
    assert url == "https://dev.azure.com/org/_apis/wit/workitems/7"
    assert params["fields"] == "System.Title,Custom.ReportingInfo"
    assert params["api-version"] == "7.0"
    assert timeout == 5


def test_get_work_item_with_relations_expands_relations(monkeypatch, service):
    captured = {}

    def fake_get(url, headers=None, params=None, timeout=None):
        captured.update(params)
        return FakeResponse(payload=work_item_payload(1, "Epic", children=[2, 3]))

    monkeypatch.setattr(requests, "get", fake_get)

    item = service.get_work_item_with_relations(1)

    assert captured["$expand"] == "relations"
    assert [relation.target_id for relation in item.relations] == [2, 3]


def test_missing_work_item_returns_none(monkeypatch, service):
    monkeypatch.setattr(requests, "get", lambda *args, **kwargs: FakeResponse(404, text="not found"))

    assert service.get_work_item_with_relations(99) is None


@pytest.mark.parametrize("status_code", [401, 203])
def test_invalid_pat_raises_authentication_error(monkeypatch, service, status_code):
    monkeypatch.setattr(requests, "get", lambda *args, **kwargs: FakeResponse(status_code, text="sign in"))

    with pytest.raises(AzureDevOpsAuthenticationError):
        service.get_work_item(1, [FieldNames.TITLE])


def test_server_error_raises_http_error(monkeypatch, service):
    monkeypatch.setattr(requests, "get", lambda *args, **kwargs: FakeResponse(500, text="boom"))

    with pytest.raises(requests.exceptions.HTTPError):
        service.get_work_item(1, [FieldNames.TITLE])


def test_batch_uses_omit_policy_and_drops_missing_items(monkeypatch, service):
    captured = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        captured["url"] = url
        captured["body"] = json
        return FakeResponse(payload={"count": 3, "value": [work_item_payload(1), None, work_item_payload(3, "Feature")]})

    monkeypatch.setattr(requests, "post", fake_post)

    items = service.get_work_items_batch([1, 2, 3])

    assert [item.id for item in items] == [1, 3]
    assert captured["url"].endswith("/_apis/wit/workitemsbatch?api-version=7.0")
    assert captured["body"] == {"ids": [1, 2, 3], "$expand": "Relations", "errorPolicy": "Omit"}


def test_batch_rejects_more_ids_than_the_limit(service):
    with pytest.raises(ValueError):
        service.get_work_items_batch([1, 2, 3, 4])


def test_empty_batch_makes_no_request(monkeypatch, service):
    def fail(*args, **kwargs):
        raise AssertionError("no request expected")

    monkeypatch.setattr(requests, "post", fail)

    assert service.get_work_items_batch([]) == []


def test_unparseable_batch_response_raises(monkeypatch, service):
    monkeypatch.setattr(requests, "post", lambda *args, **kwargs: FakeResponse(200, payload=None, text="<html>"))

    with pytest.raises(requests.exceptions.HTTPError):
        service.get_work_items_batch([1])
