"""
Client for the Mevo document-issuance provider.

When no provider URL and credential are configured the client answers with a
deterministic mock document and never touches the network, so the rest of the
system works offline.
"""

import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

import httpx

from neomed.core.config import Settings
from neomed.core.logging import get_logger

logger = get_logger(__name__)


class MevoProviderError(Exception):
    """Provider answered with a non-2xx status, or could not be reached."""

    code = "integration/mevo-provider-error"

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        provider_response: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.http_status = http_status
        self.provider_response = provider_response


@dataclass
class IssueResult:
    status: str
    provider_document_id: Optional[str]
    provider_token: Optional[str]
    mode: str
    raw_response: Any

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_document_type(document_type: Optional[str]) -> str:
    return "certificate" if document_type == "certificate" else "prescription"


class MevoClient:
    """Service for issuing signed documents through Mevo."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = settings.mevo_api_url
        self.issue_path = settings.mevo_issue_path
        self.api_token = settings.mevo_api_token
        self.api_key = settings.mevo_api_key
        self.client_id = settings.mevo_client_id
        self.client_secret = settings.mevo_client_secret
        self.is_configured = settings.mevo_configured
        self.http_client = httpx.AsyncClient(timeout=settings.mevo_timeout_seconds, transport=transport)

    @property
    def endpoint(self) -> str:
        path = self.issue_path if self.issue_path.startswith("/") else f"/{self.issue_path}"
        return f"{self.base_url.rstrip('/')}{path}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        if self.api_key:
            headers["x-api-key"] = self.api_key
        if self.client_id:
            headers["x-client-id"] = self.client_id
        if self.client_secret:
            headers["x-client-secret"] = self.client_secret
        return headers

    def mock_document(self, payload: Dict[str, Any]) -> IssueResult:
        timestamp = int(time.time() * 1000)
        document_type = normalize_document_type(payload.get("documentType"))
        return IssueResult(
            status="pending_configuration",
            provider_document_id=f"mevo_mock_{document_type}_{timestamp}",
            provider_token=f"mevo_mock_token_{timestamp}",
            mode="mock",
            raw_response={
                "simulated": True,
                "reason": "mevo-not-configured",
                "advice": "Configure MEVO_API_URL and credentials to send documents to Mevo.",
            },
        )

    async def issue_document(self, payload: Dict[str, Any]) -> IssueResult:
        """Send one document to the provider and normalise its answer."""
        if not self.is_configured:
            return self.mock_document(payload)

        try:
            response = await self.http_client.post(self.endpoint, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            logger.error("Mevo request timed out", endpoint=self.endpoint, error=str(e))
            raise MevoProviderError("Request timeout.") from e
        except httpx.HTTPError as e:
            logger.error("Mevo request failed", endpoint=self.endpoint, error=str(e))
            raise MevoProviderError(f"Mevo provider unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            message = None
            if isinstance(body, dict):
                message = body.get("message")
            message = message or f"Mevo provider request failed with status {response.status_code}."
            logger.warning("Mevo provider rejected document", status_code=response.status_code)
            raise MevoProviderError(message, http_status=response.status_code, provider_response=body)

        data = body if isinstance(body, dict) else {}
        return IssueResult(
            status=data.get("status") or "emitted",
            provider_document_id=data.get("documentId") or data.get("id"),
            provider_token=data.get("token") or data.get("accessToken"),
            mode="provider",
            raw_response=body,
        )

    async def aclose(self):
        await self.http_client.aclose()
