"""HTTP client for the advisory oracle."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any

import requests

from ..core.advisory import OracleUnavailable
from ..core.config import DEFAULT_CONFIG, OracleConfig, RetryConfig
from .http import ProviderError, request_with_retry

logger = logging.getLogger(__name__)


class HttpOracle:
    """
    POSTs ``{"kind": ..., "context": {...}}`` to the oracle endpoint.

    The response body must be a JSON object; anything else, and any
    transport failure after retries, surfaces as OracleUnavailable.
    """

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        retry: RetryConfig = DEFAULT_CONFIG.retry,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.url = url
        self.retry = retry
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if api_key:
            self.session.headers.update({"Authorization": f"Bearer {api_key}"})
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: OracleConfig, retry: RetryConfig = DEFAULT_CONFIG.retry) -> "HttpOracle | None":
        """Client for an active oracle config, else None."""
        if not config.active:
            return None
        return cls(config.url, config.api_key, retry=retry)  # type: ignore[arg-type]

    def request(self, kind: str, context: Mapping[str, Any]) -> Mapping[str, Any] | None:
        payload = json.dumps({"kind": kind, "context": context}, default=str)
        kwargs: dict[str, Any] = {"retry": self.retry, "data": payload}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        try:
            response = request_with_retry(self.session, "POST", self.url, **kwargs)
        except ProviderError as e:
            raise OracleUnavailable(str(e)) from e

        if response.status_code == 204 or not response.content:
            return None
        try:
            body = response.json()
        except ValueError as e:
            raise OracleUnavailable(f"oracle returned invalid JSON for {kind}") from e
        if not isinstance(body, dict):
            raise OracleUnavailable(f"oracle returned {type(body).__name__} for {kind}")
        logger.debug("oracle %s response: %s", kind, body)
        return body
