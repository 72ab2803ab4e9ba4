"""
Request/reply client for the remote product and payment services.

Each call is a JSON POST to ``{base_url}/rpc/{pattern}``; the JSON reply body is
the result. A remote error is a non-2xx reply whose body may carry
``{"status": ..., "message": ...}``.

Every call has an explicit timeout. Transport errors (connect/read timeouts,
refused connections) and 5xx replies are retried with exponential backoff;
4xx replies are not. Whatever finally fails is raised as DependencyError with
the original exception attached.
"""
import asyncio
import logging
from typing import Any, Optional

import httpx

from domain.errors import DependencyError

logger = logging.getLogger(__name__)


class RpcClient:
    """httpx-backed request/reply client for one remote service."""

    def __init__(
        self,
        base_url: str,
        *,
        service_name: str,
        timeout: float = 5.0,
        max_retries: int = 2,
        backoff_seconds: float = 0.2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_name = service_name
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.backoff_seconds = backoff_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RpcClient":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def send(self, pattern: str, payload: Any) -> Any:
        """
        Send one request and wait for its reply.

        Args:
            pattern: Remote handler name (e.g. 'validate_products')
            payload: JSON-serializable request body

        Returns:
            Decoded JSON reply

        Raises:
            DependencyError: remote unreachable, timed out, or replied with an error
        """
        if self._client is None:
            await self.open()

        attempts = self.max_retries + 1
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.post(f"/rpc/{pattern}", json=payload)
            except httpx.TransportError as e:
                last_error = e
                logger.warning(
                    f"{self.service_name} '{pattern}' attempt {attempt}/{attempts} failed: {e!r}"
                )
            else:
                if response.status_code >= 500:
                    last_error = httpx.HTTPStatusError(
                        f"{self.service_name} replied {response.status_code}",
                        request=response.request,
                        response=response,
                    )
                    logger.warning(
                        f"{self.service_name} '{pattern}' attempt {attempt}/{attempts} "
                        f"got {response.status_code}"
                    )
                elif response.status_code >= 400:
                    raise self._remote_error(pattern, response)
                else:
                    return self._decode(pattern, response)

            if attempt < attempts:
                await asyncio.sleep(self.backoff_seconds * (2 ** (attempt - 1)))

        logger.error(f"{self.service_name} '{pattern}' failed after {attempts} attempt(s)")
        raise DependencyError(
            f"{self.service_name} service unavailable",
            service=self.service_name,
            details={"pattern": pattern, "attempts": attempts},
            cause=last_error,
        )

    def _decode(self, pattern: str, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise DependencyError(
                f"{self.service_name} returned a non-JSON reply",
                service=self.service_name,
                details={"pattern": pattern},
                cause=e,
            ) from e

    def _remote_error(self, pattern: str, response: httpx.Response) -> DependencyError:
        message = f"{self.service_name} rejected '{pattern}'"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            message = f"{message}: {body['message']}"

        cause = httpx.HTTPStatusError(message, request=response.request, response=response)
        return DependencyError(
            message,
            service=self.service_name,
            details={"pattern": pattern, "remote_status": response.status_code},
            cause=cause,
        )
