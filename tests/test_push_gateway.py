import json

import httpx
import pytest
from tenacity import wait_none

from airalert.services.push_gateway import (
    DEVICE_NOT_REGISTERED,
    INVALID_TOKEN_ERROR,
    ExpoPushClient,
    PushMessage,
    is_expo_push_token,
)

PUSH_URL = "https://push.test/--/api/v2/push/send"


class RecordingHandler:
    """httpx.MockTransport handler answering each message with an ``ok`` ticket."""

    def __init__(self, statuses=None, ticket_for=None):
        self.requests: list[httpx.Request] = []
        self.statuses = list(statuses or [])
        self.ticket_for = ticket_for or (lambda index, message: {"status": "ok", "id": f"ticket-{message['to']}"})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if self.statuses else 200
        if status != 200:
            return httpx.Response(status, text="upstream unavailable")
        payload = json.loads(request.content)
        return httpx.Response(200, json={"data": [self.ticket_for(i, m) for i, m in enumerate(payload)]})

    @property
    def submitted_tokens(self) -> list[str]:
        return [message["to"] for request in self.requests for message in json.loads(request.content)]


def build_client(handler, **kwargs) -> ExpoPushClient:
    return ExpoPushClient(
        url=PUSH_URL,
        access_token=kwargs.pop("access_token", ""),
        transport=httpx.MockTransport(handler),
        retry_wait=wait_none(),
        max_retries=kwargs.pop("max_retries", 3),
        **kwargs,
    )


def message(token: str) -> PushMessage:
    return PushMessage(to=token, title="Air Quality Alert", body="PM2.5 is critical", data={"deviceId": "D1"})


@pytest.mark.parametrize(
    "token, expected",
    [
        ("ExponentPushToken[abc123]", True),
        ("ExpoPushToken[abc123]", True),
        ("2f4c1a9e-33b1-4d2a-9c6e-0a1b2c3d4e5f", True),
        ("fcm:abc123", False),
        ("ExponentPushToken[abc", False),
        ("", False),
        (None, False),
    ],
)
def test_is_expo_push_token(token, expected):
    assert is_expo_push_token(token) is expected


def test_invalid_tokens_are_never_submitted():
    handler = RecordingHandler()
    client = build_client(handler)

    outcomes = client.send([message("ExponentPushToken[good]"), message("not-a-token")])

    assert handler.submitted_tokens == ["ExponentPushToken[good]"]
    assert [o.ok for o in outcomes] == [True, False]
    assert outcomes[1].error == INVALID_TOKEN_ERROR
    assert outcomes[0].ticket_id == "ticket-ExponentPushToken[good]"


def test_large_batches_are_chunked_and_outcomes_keep_order():
    handler = RecordingHandler()
    client = build_client(handler, chunk_size=2)
    tokens = [f"ExponentPushToken[{i}]" for i in range(5)]

    outcomes = client.send([message(token) for token in tokens])

    assert len(handler.requests) == 3
    assert [o.token for o in outcomes] == tokens
    assert all(o.ok for o in outcomes)


def test_rejected_ticket_fails_only_that_message():
    def ticket_for(index, payload):
        if payload["to"].endswith("[gone]"):
            return {
                "status": "error",
                "message": "The recipient device is not registered",
                "details": {"error": DEVICE_NOT_REGISTERED},
            }
        return {"status": "ok", "id": "ticket-1"}

    handler = RecordingHandler(ticket_for=ticket_for)
    client = build_client(handler)

    outcomes = client.send([message("ExponentPushToken[ok]"), message("ExponentPushToken[gone]")])

    assert outcomes[0].ok is True
    assert outcomes[1].ok is False
    assert outcomes[1].device_not_registered is True
    assert "not registered" in outcomes[1].error


def test_server_errors_are_retried():
    handler = RecordingHandler(statuses=[503, 500])
    client = build_client(handler, max_retries=3)

    outcomes = client.send([message("ExponentPushToken[retry]")])

    assert len(handler.requests) == 3
    assert outcomes[0].ok is True


def test_exhausted_retries_fail_the_chunk_without_raising():
    handler = RecordingHandler(statuses=[500, 500, 500])
    client = build_client(handler, max_retries=3, chunk_size=1)

    outcomes = client.send([message("ExponentPushToken[a]"), message("ExponentPushToken[b]")])

    assert outcomes[0].ok is False
    assert "Push transport failed" in outcomes[0].error
    # The second chunk is sent independently once the first has given up
    assert outcomes[1].ok is True


def test_client_errors_are_not_retried():
    handler = RecordingHandler(statuses=[400])
    client = build_client(handler)

    outcomes = client.send([message("ExponentPushToken[a]")])

    assert len(handler.requests) == 1
    assert outcomes[0].ok is False
    assert outcomes[0].error == "Expo error 400"


def test_transport_errors_are_retried_then_reported():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = build_client(handler, max_retries=2)

    outcomes = client.send([message("ExponentPushToken[a]")])

    assert len(calls) == 2
    assert outcomes[0].ok is False


def test_access_token_is_sent_as_bearer_header():
    handler = RecordingHandler()
    client = build_client(handler, access_token="secret-token")

    client.send([message("ExponentPushToken[a]")])

    assert handler.requests[0].headers["Authorization"] == "Bearer secret-token"
    assert json.loads(handler.requests[0].content)[0]["sound"] == "default"


def test_retry_logging_tolerates_braces_in_error_bodies():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503, json={"errors": [{"code": "PUSH_TOO_MANY_EXPERIENCE_IDS"}]})
        return httpx.Response(200, json={"data": [{"status": "ok", "id": "ticket-1"}]})

    client = build_client(handler, max_retries=3)

    outcomes = client.send([message("ExponentPushToken[a]")])

    assert len(calls) == 2
    assert outcomes[0].ok is True
    assert outcomes[0].ticket_id == "ticket-1"


@pytest.mark.parametrize(
    "reply",
    [
        httpx.Response(200, text="<html>gateway</html>"),
        httpx.Response(200, json=[{"status": "ok"}]),
        httpx.Response(200, json={"data": ["ok"]}),
    ],
)
def test_malformed_reply_fails_only_its_chunk(reply):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(reply.status_code, content=reply.content, headers=reply.headers)
        return httpx.Response(200, json={"data": [{"status": "ok", "id": "ticket-2"}]})

    client = build_client(handler, chunk_size=1)

    outcomes = client.send([message("ExponentPushToken[a]"), message("ExponentPushToken[b]")])

    assert len(calls) == 2
    assert outcomes[0].ok is False
    assert outcomes[0].error in {
        "Expo response was not valid JSON",
        "Expo response did not include one ticket per message",
    }
    assert outcomes[1].ok is True


def test_chunk_splits_by_configured_size():
    client = build_client(RecordingHandler(), chunk_size=2)

    assert client.chunk([1, 2, 3, 4, 5]) == [[1, 2], [3, 4], [5]]
