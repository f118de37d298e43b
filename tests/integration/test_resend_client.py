import json

import pytest

from civicmatch.services.email.resend_client import RESEND_API_URL, ResendClient, ResendError


async def _send(client: ResendClient) -> str:
    return await client.send_email(
        from_email="match@civicmatch.app",
        to="ana@example.org",
        subject="You might want to connect with Ben",
        html="<p>Hi</p>",
        text="Hi",
        tags={"category": "weekly_match"},
    )


@pytest.mark.asyncio
async def test_send_email_success(httpx_mock):
    client = ResendClient("re_test", backoff_factor=0)

    httpx_mock.add_response(method="POST", url=RESEND_API_URL, json={"id": "re_123"})

    message_id = await _send(client)
    await client.close()

    request = httpx_mock.get_requests()[0]
    body = json.loads(request.content)
    assert message_id == "re_123"
    assert request.headers["Authorization"] == "Bearer re_test"
    assert body["to"] == ["ana@example.org"]
    assert body["text"] == "Hi"
    assert body["tags"] == [{"name": "category", "value": "weekly_match"}]


@pytest.mark.asyncio
async def test_send_email_validation_error(httpx_mock):
    client = ResendClient("re_test", backoff_factor=0)

    httpx_mock.add_response(
        method="POST",
        url=RESEND_API_URL,
        status_code=422,
        json={"name": "validation_error", "message": "Invalid `to` field."},
    )

    with pytest.raises(ResendError) as exc:
        await _send(client)

    await client.close()

    assert exc.value.status_code == 422
    assert exc.value.error_name == "validation_error"
    assert exc.value.recoverable is False


@pytest.mark.asyncio
async def test_rate_limit_is_retried(httpx_mock):
    client = ResendClient("re_test", backoff_factor=0)

    httpx_mock.add_response(method="POST", url=RESEND_API_URL, status_code=429, json={})
    httpx_mock.add_response(method="POST", url=RESEND_API_URL, json={"id": "re_456"})

    assert await _send(client) == "re_456"
    await client.close()


@pytest.mark.asyncio
async def test_missing_message_id_is_an_error(httpx_mock):
    client = ResendClient("re_test", backoff_factor=0)

    httpx_mock.add_response(method="POST", url=RESEND_API_URL, json={})

    with pytest.raises(ResendError):
        await _send(client)

    await client.close()


def test_api_key_is_required():
    with pytest.raises(ValueError):
        ResendClient("")
