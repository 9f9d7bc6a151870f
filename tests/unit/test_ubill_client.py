import requests

from academy.db import models
from academy.services.ubill_client import (
    STATUS_ERROR,
    UBillClient,
    UBillConfig,
    map_ubill_status,
)


class _Response:
    def __init__(self, text="", payload=None):
        self.text = text
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _FakeHttp:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append(("POST", url, kwargs))
        if self.error:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        self.calls.append(("GET", url, kwargs))
        if self.error:
            raise self.error
        return self.response


def _client(monkeypatch, http):
    monkeypatch.setenv("UBILL_API_KEY", "key-123")
    monkeypatch.setenv("UBILL_BRAND_ID", "77")
    return UBillClient(config=UBillConfig(), session=http)


def test_config_reads_env(monkeypatch):
    monkeypatch.delenv("UBILL_API_KEY", raising=False)
    monkeypatch.setenv("UBILL_BRAND_ID", "77")
    monkeypatch.setenv("SMS_DAILY_LIMIT", "250")
    config = UBillConfig()
    assert config.is_configured() is False
    assert config.validate() == ["UBILL_API_KEY is required"]
    assert config.daily_limit == 250


def test_config_ignores_non_numeric_limit(monkeypatch):
    monkeypatch.setenv("SMS_DAILY_LIMIT", "lots")
    assert UBillConfig().daily_limit is None


def test_build_request_escapes_text():
    xml = UBillClient.build_request("77", ["995555123456", "995599000000"], 'Tom & "Jerry" <3')
    assert "<brandID>77</brandID>" in xml
    assert "<numbers>995555123456,995599000000</numbers>" in xml
    assert "<text>Tom &amp; &quot;Jerry&quot; &lt;3</text>" in xml
    assert "<stopList>false</stopList>" in xml


def test_parse_response():
    parsed = UBillClient.parse_response(
        "<response><statusID>0</statusID><smsID>4521</smsID><message>OK</message></response>"
    )
    assert parsed == {"status_id": 0, "sms_id": "4521", "message": "OK"}
    assert UBillClient.parse_response("garbage")["status_id"] == -1


def test_map_status():
    assert map_ubill_status(0) == models.SmsStatus.SENT
    assert map_ubill_status("1") == models.SmsStatus.DELIVERED
    assert map_ubill_status(2) == models.SmsStatus.UNDELIVERED
    assert map_ubill_status(3) == models.SmsStatus.AWAITING
    assert map_ubill_status(4) == models.SmsStatus.ERROR
    assert map_ubill_status(None) == models.SmsStatus.PENDING
    assert map_ubill_status(99) == models.SmsStatus.PENDING


def test_send_success(monkeypatch):
    http = _FakeHttp(_Response("<statusID>0</statusID><smsID>991</smsID>"))
    result = _client(monkeypatch, http).send("995555123456", "Hello")
    assert result == {"success": True, "provider": "ubill", "status_id": 0, "message_id": "991"}
    method, url, kwargs = http.calls[0]
    assert url.endswith("/sendXml")
    assert kwargs["params"] == {"key": "key-123"}
    assert b"<numbers>995555123456</numbers>" in kwargs["data"]


def test_send_provider_failure(monkeypatch):
    http = _FakeHttp(_Response("<statusID>4</statusID><message>Bad brand</message>"))
    result = _client(monkeypatch, http).send(["995555123456"], "Hello")
    assert result["success"] is False
    assert result["status_id"] == 4
    assert result["error"] == "Bad brand"


def test_send_network_error_never_raises(monkeypatch):
    http = _FakeHttp(error=requests.ConnectionError("down"))
    result = _client(monkeypatch, http).send(["995555123456"], "Hello")
    assert result["success"] is False
    assert result["status_id"] == STATUS_ERROR
    assert "down" in result["error"]


def test_get_report_maps_statuses(monkeypatch):
    http = _FakeHttp(_Response(payload={"statusID": 0, "result": [{"number": "995555123456", "statusID": 1}]}))
    report = _client(monkeypatch, http).get_report("991")
    assert report["success"] is True
    assert report["results"] == [{"number": "995555123456", "status": models.SmsStatus.DELIVERED}]


def test_get_balance_handles_bad_json(monkeypatch):
    http = _FakeHttp(_Response(text="oops"))
    result = _client(monkeypatch, http).get_balance()
    assert result["success"] is False
