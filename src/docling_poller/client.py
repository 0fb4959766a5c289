from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import requests
from pydantic import ValidationError

from docling_poller.schema import (
    ConversionResult,
    ConvertSourcesRequest,
    TaskStatusResponse,
    TaskSubmission,
)

logger = logging.getLogger(__name__)

STATUS_PATH = "/v1/status/poll/{task_id}"
RESULT_PATH = "/v1/result/{task_id}"
SUBMIT_PATH = "/v1/convert/source/async"
HEALTH_PATH = "/health"


class ProtocolError(RuntimeError):
    """The service answered with something we can't interpret (or didn't answer at all)."""

    def __init__(self, message: str, *, status_code: int | None = None, raw: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.raw = raw


class ServeClient:
    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        identity_token: str | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.identity_token = identity_token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {}
        if self.identity_token:
            headers["Authorization"] = f"Bearer {self.identity_token}"
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        return headers

    def _clone(self, **overrides: Any) -> "ServeClient":
        params = {
            "api_key": self.api_key,
            "identity_token": self.identity_token,
            "timeout": self.timeout,
            "session": self.session,
        }
        params.update(overrides)
        return ServeClient(self.base_url, **params)

    def without_api_key(self) -> "ServeClient":
        return self._clone(api_key=None)

    def without_identity_token(self) -> "ServeClient":
        return self._clone(identity_token=None)

    def _send(self, method: str, path: str, payload: dict | None = None) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            return self.session.request(
                method,
                url,
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProtocolError(f"{method} {path} failed: {e}") from e

    def _request_json(self, method: str, path: str, payload: dict | None = None) -> dict[str, Any]:
        response = self._send(method, path, payload)
        if not 200 <= response.status_code < 300:
            raise ProtocolError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                raw=response.text,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ProtocolError(
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
                raw=response.text,
            ) from e

        if not isinstance(body, dict):
            raise ProtocolError(
                f"{method} {path} returned {type(body).__name__}, expected an object",
                status_code=response.status_code,
                raw=response.text,
            )
        return body

    def health(self) -> dict[str, Any]:
        return self._request_json("GET", HEALTH_PATH)

    def submit(self, request: ConvertSourcesRequest) -> TaskSubmission:
        body = self._request_json("POST", SUBMIT_PATH, request.model_dump(mode="json"))
        try:
            return TaskSubmission.model_validate(body)
        except ValidationError as e:
            raise ProtocolError(f"Submission response has no task_id: {e}", raw=json.dumps(body)) from e

    def probe_submit(self, request: ConvertSourcesRequest) -> int:
        """Submit and report only the HTTP status code. HTTP errors are not raised."""
        return self._send("POST", SUBMIT_PATH, request.model_dump(mode="json")).status_code

    def get_status(self, task_id: str) -> TaskStatusResponse:
        body = self._request_json("GET", STATUS_PATH.format(task_id=quote(task_id, safe="")))
        try:
            return TaskStatusResponse.from_body(body)
        except ValidationError as e:
            raise ProtocolError(
                f"Status response for task {task_id} has no usable task_status: {e}",
                raw=json.dumps(body),
            ) from e

    def get_result(self, task_id: str) -> ConversionResult:
        body = self._request_json("GET", RESULT_PATH.format(task_id=quote(task_id, safe="")))
        try:
            return ConversionResult.model_validate(body)
        except ValidationError as e:
            raise ProtocolError(
                f"Result for task {task_id} failed schema validation: {e}",
                raw=json.dumps(body),
            ) from e
