"""Webhook dispatcher: POSTs payloads to HTTP targets."""

import logging
from typing import Any

import httpx

from chime.scheduling.errors import DeliveryError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class WebhookDispatcher:
    """Deliver a payload as the JSON body of a POST to the target URL.

    String payloads are wrapped as ``{"content": payload}`` so chat webhooks
    that expect a content field accept them directly.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        headers: dict[str, str] | None = None,
        auth_token: str | None = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._headers = dict(headers or {})
        if auth_token:
            self._headers["Authorization"] = f"Bearer {auth_token}"

    async def deliver(self, target: str, payload: Any) -> None:
        """POST the payload to ``target``.

        Raises:
            DeliveryError: On transport failure or a non-2xx response.
        """
        if not target.startswith(("http://", "https://")):
            raise DeliveryError(f"Unsupported webhook target: {target!r}")

        body = {"content": payload} if isinstance(payload, str) else payload
        client = self._get_client()
        try:
            response = await client.post(
                target, json=body, headers=self._headers, timeout=self._timeout
            )
        except httpx.HTTPError as e:
            raise DeliveryError(f"Webhook request to {target} failed: {e}") from e

        if response.is_error:
            raise DeliveryError(
                f"Webhook {target} responded {response.status_code}: {response.text[:200]}"
            )
        logger.debug(
            "webhook_delivered",
            extra={"dispatch.target": target, "http.status": response.status_code},
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client
