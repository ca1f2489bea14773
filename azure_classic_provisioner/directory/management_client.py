"""REST client for the classic Service Management API."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import requests
from azure.identity import DefaultAzureCredential

from ..config import AzureConfig
from ..exceptions import ProvisioningFailure
from .payloads import parse_error, parse_operation

logger = logging.getLogger(__name__)

TOKEN_SCOPE = "https://management.core.windows.net//.default"
TOKEN_REFRESH_MARGIN_SECONDS = 300


class ServiceManagementClient:
    """Thin wrapper around the Service Management REST API.

    Asynchronous calls (HTTP 202) are followed to completion before returning.
    """

    def __init__(
        self,
        config: AzureConfig,
        credential: Any = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._base = f"{config.management_url.rstrip('/')}/{config.subscription_id}"
        self._session = requests.Session()
        self._session.headers["x-ms-version"] = config.api_version
        self._timeout = config.timeout
        self._poll_seconds = config.operation_poll_seconds
        self._operation_timeout = config.operation_timeout_seconds
        self._sleep = sleep
        self._token = None

        if config.credential_type == "certificate":
            self._session.cert = config.certificate_path
            self._credential = None
        else:
            self._credential = credential or DefaultAzureCredential()

    # ── Verbs ───────────────────────────────────────────────────────

    def get(self, path: str, params: dict | None = None) -> requests.Response:
        return self._request("GET", path, params=params)

    def post(self, path: str, body: str, content_type: str = "application/xml") -> requests.Response:
        return self._send("POST", path, body, content_type)

    def put(self, path: str, body: str, content_type: str = "application/xml") -> requests.Response:
        return self._send("PUT", path, body, content_type)

    # ── Long-running operations ─────────────────────────────────────

    def wait_for_operation(self, request_id: str) -> None:
        """Poll an asynchronous operation until it succeeds; raise if it fails or stalls."""
        deadline = time.monotonic() + self._operation_timeout
        while True:
            resp = self._request("GET", f"/operations/{request_id}")
            status, http_status, error_code, message = parse_operation(resp.content)
            if status == "Succeeded":
                logger.debug("Operation %s succeeded", request_id, extra={"request_id": request_id})
                return
            if status == "Failed":
                raise ProvisioningFailure(
                    f"Operation {request_id} failed: {error_code}: {message}",
                    status_code=http_status,
                    error_code=error_code,
                    response_body=resp.text,
                )
            if time.monotonic() >= deadline:
                raise ProvisioningFailure(
                    f"Operation {request_id} still {status} after {self._operation_timeout}s",
                )
            self._sleep(self._poll_seconds)

    # ── Internal HTTP helpers ───────────────────────────────────────

    def _send(self, method: str, path: str, body: str, content_type: str) -> requests.Response:
        resp = self._request(
            method, path,
            data=body.encode("utf-8"),
            headers={"Content-Type": content_type},
        )
        if resp.status_code == 202:
            request_id = resp.headers.get("x-ms-request-id")
            if request_id:
                logger.debug("%s %s accepted as operation %s", method, path, request_id)
                self.wait_for_operation(request_id)
        return resp

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self._base}{path}"
        kwargs.setdefault("timeout", self._timeout)
        headers = kwargs.pop("headers", None) or {}
        headers.update(self._auth_headers())
        logger.debug("%s %s params=%s", method, path, kwargs.get("params"))

        try:
            resp = self._session.request(method, url, headers=headers, **kwargs)
        except requests.RequestException as exc:
            raise ProvisioningFailure(f"Request failed: {exc}") from exc

        if resp.status_code >= 400:
            error_code, message = parse_error(resp.content)
            raise ProvisioningFailure(
                f"HTTP {resp.status_code} on {method} {path}: {error_code or ''} {message or resp.text}".strip(),
                status_code=resp.status_code,
                error_code=error_code,
                response_body=resp.text,
            )

        return resp

    def _auth_headers(self) -> dict[str, str]:
        if self._credential is None:
            return {}
        if self._token is None or self._token.expires_on - TOKEN_REFRESH_MARGIN_SECONDS <= time.time():
            self._token = self._credential.get_token(TOKEN_SCOPE)
        return {"Authorization": f"Bearer {self._token.token}"}
