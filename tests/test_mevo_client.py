import json

import httpx
import pytest

from conftest import make_settings
from neomed.services.mevo_client import MevoClient, MevoProviderError

CONFIGURED = {
    "mevo_api_url": "https://api.mevo.example.com/",
    "mevo_api_token": "tok-123",
    "mevo_api_key": "key-456",
}


def make_client(handler=None, **overrides):
    transport = httpx.MockTransport(handler) if handler else None
    return MevoClient(make_settings(**overrides), transport=transport)


async def test_unconfigured_client_returns_mock_without_network():
    def handler(request):
        raise AssertionError("no request expected")

    client = make_client(handler)
    result = await client.issue_document({"documentType": "certificate"})
    await client.aclose()

    assert result.mode == "mock"
    assert result.status == "pending_configuration"
    assert result.provider_document_id.startswith("mevo_mock_certificate_")
    assert result.provider_token.startswith("mevo_mock_token_")
    assert result.raw_response["simulated"] is True


async def test_unknown_document_type_mocks_as_prescription():
    client = make_client()
    result = await client.issue_document({})
    await client.aclose()
    assert result.provider_document_id.startswith("mevo_mock_prescription_")


async def test_configured_client_posts_with_credentials():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "doc-9", "accessToken": "at-1"})

    client = make_client(handler, **CONFIGURED)
    result = await client.issue_document({"documentType": "prescription", "prescriptionId": "rx-1"})
    await client.aclose()

    assert seen["url"] == "https://api.mevo.example.com/v1/documents/issue"
    assert seen["headers"]["authorization"] == "Bearer tok-123"
    assert seen["headers"]["x-api-key"] == "key-456"
    assert "x-client-id" not in seen["headers"]
    assert seen["body"]["prescriptionId"] == "rx-1"

    assert result.mode == "provider"
    assert result.status == "emitted"
    assert result.provider_document_id == "doc-9"
    assert result.provider_token == "at-1"


async def test_provider_status_is_kept():
    def handler(request):
        return httpx.Response(201, json={"documentId": "d-1", "token": "t-1", "status": "processing"})

    client = make_client(handler, **CONFIGURED)
    result = await client.issue_document({"documentType": "prescription"})
    await client.aclose()
    assert (result.status, result.provider_document_id, result.provider_token) == ("processing", "d-1", "t-1")


async def test_non_2xx_raises_with_provider_message():
    def handler(request):
        return httpx.Response(422, json={"message": "CRM inválido"})

    client = make_client(handler, **CONFIGURED)
    with pytest.raises(MevoProviderError) as exc_info:
        await client.issue_document({"documentType": "prescription"})
    await client.aclose()

    assert exc_info.value.message == "CRM inválido"
    assert exc_info.value.http_status == 422
    assert exc_info.value.provider_response == {"message": "CRM inválido"}


async def test_non_json_error_body_gets_default_message():
    def handler(request):
        return httpx.Response(500, text="boom")

    client = make_client(handler, **CONFIGURED)
    with pytest.raises(MevoProviderError) as exc_info:
        await client.issue_document({"documentType": "prescription"})
    await client.aclose()

    assert exc_info.value.http_status == 500
    assert "500" in exc_info.value.message


async def test_timeout_raises_without_status():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    client = make_client(handler, **CONFIGURED)
    with pytest.raises(MevoProviderError) as exc_info:
        await client.issue_document({"documentType": "prescription"})
    await client.aclose()

    assert exc_info.value.message == "Request timeout."
    assert exc_info.value.http_status is None


def test_client_credentials_pair_counts_as_configured():
    settings = make_settings(
        mevo_api_url="https://api.mevo.example.com",
        mevo_client_id="cid",
        mevo_client_secret="secret",
    )
    assert settings.mevo_configured
    assert not make_settings(mevo_api_url="https://api.mevo.example.com", mevo_client_id="cid").mevo_configured
