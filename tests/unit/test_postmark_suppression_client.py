import pytest
import requests

from academy.services import postmark_client
from academy.services.postmark_client import PostmarkError, PostmarkSuppressionClient


class _Response:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body or {}

    def json(self):
        return self._body


class _Session:
    def __init__(self, get_responses=(), post_responses=()):
        self.get_responses = list(get_responses)
        self.post_responses = list(post_responses)
        self.gets = []
        self.posts = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.gets.append({"url": url, "params": params})
        return self.get_responses.pop(0)

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json})
        response = self.post_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(session):
    return PostmarkSuppressionClient(server_token="tok", message_stream="broadcast", session=session)


def test_list_suppressions_pages_until_short_batch(monkeypatch):
    monkeypatch.setattr(postmark_client, "PAGE_SIZE", 2)
    session = _Session(get_responses=[
        _Response(200, {"Suppressions": [{"EmailAddress": "a@x.com"}, {"EmailAddress": "b@x.com"}]}),
        _Response(200, {"Suppressions": [{"EmailAddress": "c@x.com"}]}),
    ])

    emails = [s["EmailAddress"] for s in _client(session).list_suppressions()]

    assert emails == ["a@x.com", "b@x.com", "c@x.com"]
    assert [call["params"]["offset"] for call in session.gets] == [0, 2]
    assert session.gets[0]["url"].endswith("/message-streams/broadcast/suppressions")


def test_list_suppressions_raises_on_http_error():
    with pytest.raises(PostmarkError):
        _client(_Session(get_responses=[_Response(500)])).list_suppressions()


def test_add_suppressions_splits_pushed_and_failed(monkeypatch):
    monkeypatch.setattr(postmark_client, "PUSH_BATCH_SIZE", 1)
    session = _Session(post_responses=[_Response(200), requests.ConnectionError("down")])

    pushed, failed = _client(session).add_suppressions(["a@x.com", "b@x.com"])

    assert pushed == ["a@x.com"]
    assert failed == ["b@x.com"]
    assert session.posts[0]["json"] == {"Suppressions": [{"EmailAddress": "a@x.com"}]}


def test_delete_suppression():
    session = _Session(post_responses=[_Response(200)])
    assert _client(session).delete_suppression("a@x.com") is True
    assert session.posts[0]["url"].endswith("/suppressions/delete")
    assert _client(_Session(post_responses=[_Response(422)])).delete_suppression("a@x.com") is False


def test_is_configured():
    assert PostmarkSuppressionClient(server_token="", session=_Session()).is_configured() is False
