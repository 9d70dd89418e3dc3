"""Shared httpx plumbing for the external collaborators."""
from typing import Any, Optional, Tuple

import httpx

from railtrace.logging_config import get_logger
from railtrace.services.errors import UpstreamError, UpstreamTimeoutError

logger = get_logger(__name__)


class ServiceClient:
    """
    Thin wrapper around ``httpx.Client`` that maps transport failures onto
    the domain taxonomy: timeouts become UpstreamTimeoutError, everything
    else (connection errors, non-2xx) becomes UpstreamError.

    ``transport`` is injectable so tests can use ``httpx.MockTransport``.
    """
    service_name = "upstream"

    def __init__(
        self,
        base_url: str,
        timeout: float,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def request(
        self,
        method: str,
        path: str,
        passthrough_statuses: Tuple[int, ...] = (),
        **kwargs: Any
    ) -> httpx.Response:
        """Send a request; non-2xx raises unless listed in passthrough_statuses."""
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            logger.warning(
                "Upstream call timed out",
                service=self.service_name,
                path=path,
                timeout=self.timeout,
            )
            raise UpstreamTimeoutError(self.service_name, self.timeout)
        except httpx.HTTPError as e:
            logger.warning("Upstream call failed", service=self.service_name, path=path, error=str(e))
            raise UpstreamError(self.service_name, f"request failed: {e}")

        if not response.is_success and response.status_code not in passthrough_statuses:
            logger.warning(
                "Upstream returned error status",
                service=self.service_name,
                path=path,
                status_code=response.status_code,
            )
            raise UpstreamError(self.service_name, f"HTTP {response.status_code}")
        return response

    def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self.request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError:
            raise UpstreamError(self.service_name, "malformed JSON response")

    def close(self) -> None:
        self._client.close()
