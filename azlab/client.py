"""Azure REST API clients.

Usage:
    arm  = ArmClient(subscription_id="0000...", token="eyJ0...")
    rgs  = arm.list(f"{arm.subscription_scope}/resourcegroups", api_version="2021-04-01")
    op   = arm.begin_delete(arm.rg_path("lab-rg"), api_version="2021-04-01")
    op.wait(timeout=900, poll_interval=5)

    graph = GraphClient(token="eyJ0...")
    users = graph.list("/users", {"$filter": "startswith(displayName,'lab')"})
"""

from __future__ import annotations

import logging
import time
import warnings
from typing import Any, Iterable

import requests

MANAGEMENT_URL = "https://management.azure.com"
GRAPH_URL = "https://graph.microsoft.com/v1.0"

PAGINATION_WARNING_THRESHOLD = 10_000
GET_BY_IDS_BATCH = 1000

SUCCEEDED = "Succeeded"
FAILED = "Failed"
CANCELED = "Canceled"
IN_PROGRESS = "InProgress"
TIMED_OUT = "TimedOut"
TERMINAL_STATES = (SUCCEEDED, FAILED, CANCELED)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class AzureClientError(Exception):
    """Base exception for all client errors."""

    def __init__(self, message: str, status_code: int | None = None,
                 code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class AuthenticationError(AzureClientError):
    """Raised on HTTP 401: invalid or expired token."""


class AuthorizationError(AzureClientError):
    """Raised on HTTP 403: the token's identity lacks permission."""


class NotFoundError(AzureClientError):
    """Raised on HTTP 404: resource, group or principal not found."""


class ConflictError(AzureClientError):
    """Raised on HTTP 409: resource already exists or is busy."""


class NetworkError(AzureClientError):
    """Raised on connection timeout or unreachable endpoint."""


class OperationFailedError(AzureClientError):
    """Raised when a long-running operation ends Failed or Canceled."""


class OperationTimeoutError(AzureClientError):
    """Raised when a long-running operation outlives its timeout."""


_STATUS_ERRORS: dict[int, type[AzureClientError]] = {
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ConflictError,
}


# ---------------------------------------------------------------------------
# Base client
# ---------------------------------------------------------------------------

class RestClient:
    """Thin wrapper around a bearer-token JSON REST API."""

    def __init__(self, base_url: str, token: str, timeout: int = 30) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = requests.Session()
        self._session.headers["Authorization"] = f"Bearer {token}"
        self._session.headers["Content-Type"] = "application/json"

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> requests.Response:
        """Perform a request and return the raw response.

        Raises:
            AuthenticationError: HTTP 401
            AuthorizationError:  HTTP 403
            NotFoundError:       HTTP 404
            ConflictError:       HTTP 409
            AzureClientError:    Any other non-2xx response
            NetworkError:        Timeout or connection failure
        """
        url = self._url(path)
        logger.debug("%s %s", method, url)
        try:
            response = self._session.request(
                method, url, params=params, json=json, timeout=self._timeout
            )
        except requests.exceptions.Timeout as exc:
            raise NetworkError(
                f"Request timed out after {self._timeout}s while contacting '{url}'"
            ) from exc
        except requests.exceptions.ConnectionError as exc:
            raise NetworkError(f"Unable to reach '{self.base_url}'") from exc

        if not response.ok:
            raise self._error_for(response, method, url)
        return response

    def get_paginated(self, path: str, params: dict[str, Any] | None = None) -> list[dict]:
        """Follow ``nextLink`` / ``@odata.nextLink`` and return a flat ``value`` list.

        The next-page links already carry every query parameter, so *params*
        is only sent with the first request. Emits a warning once more than
        PAGINATION_WARNING_THRESHOLD items have been collected.
        """
        all_results: list[dict] = []
        url: str | None = path
        page_params = params
        _warning_emitted = False

        while url:
            data = _json(self.request("GET", url, params=page_params))
            all_results.extend(data.get("value", []))

            if len(all_results) > PAGINATION_WARNING_THRESHOLD and not _warning_emitted:
                warnings.warn(
                    f"Result set exceeds {PAGINATION_WARNING_THRESHOLD} items "
                    f"while listing '{path}'. Consider narrowing the scope or filter.",
                    UserWarning,
                    stacklevel=2,
                )
                _warning_emitted = True

            url = data.get("nextLink") or data.get("@odata.nextLink")
            page_params = None

        return all_results

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        if path.startswith("https://") or path.startswith("http://"):
            return path
        return f"{self.base_url}{path}"

    @staticmethod
    def _error_for(response: requests.Response, method: str, url: str) -> AzureClientError:
        code, message = _error_envelope(response)
        status = response.status_code
        detail = f"{code}: {message}" if code else (message or response.text[:200])

        if status == 401:
            text = "Authentication failed, check that your token is valid and not expired."
        elif status == 404:
            text = f"Resource not found: {url}"
        else:
            text = f"Unexpected response {status} from {method} {url}"
        if detail:
            text = f"{text} ({detail})"

        exc_type = _STATUS_ERRORS.get(status, AzureClientError)
        return exc_type(text, status_code=status, code=code)


def _json(response: requests.Response) -> dict:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {}


def _error_envelope(response: requests.Response) -> tuple[str | None, str | None]:
    """Return ``(code, message)`` from an ARM / Graph error body, if any."""
    body = _json(response)
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("code"), error.get("message")
    return None, None


# ---------------------------------------------------------------------------
# Azure Resource Manager
# ---------------------------------------------------------------------------

class ArmClient(RestClient):
    """Client for the Azure Resource Manager API (management.azure.com).

    Every ARM call is pinned to an explicit ``api-version``.
    """

    def __init__(self, subscription_id: str, token: str, timeout: int = 30,
                 base_url: str = MANAGEMENT_URL) -> None:
        super().__init__(base_url, token, timeout)
        self.subscription_id = subscription_id

    @property
    def subscription_scope(self) -> str:
        return f"/subscriptions/{self.subscription_id}"

    def rg_path(self, resource_group: str) -> str:
        return f"{self.subscription_scope}/resourceGroups/{resource_group}"

    def provider_path(self, resource_group: str, provider: str, *parts: str) -> str:
        """``.../resourceGroups/{rg}/providers/{provider}/{parts...}``"""
        suffix = "/".join(parts)
        return f"{self.rg_path(resource_group)}/providers/{provider}/{suffix}"

    # -- synchronous verbs -------------------------------------------------

    def get(self, path: str, api_version: str, params: dict[str, Any] | None = None) -> dict:
        return _json(self.request("GET", path, _versioned(api_version, params)))

    def put(self, path: str, api_version: str, body: dict) -> dict:
        return _json(self.request("PUT", path, _versioned(api_version), json=body))

    def patch(self, path: str, api_version: str, body: dict) -> dict:
        return _json(self.request("PATCH", path, _versioned(api_version), json=body))

    def post(self, path: str, api_version: str, body: dict | None = None,
             params: dict[str, Any] | None = None) -> dict:
        return _json(self.request("POST", path, _versioned(api_version, params), json=body))

    def delete(self, path: str, api_version: str) -> dict:
        return _json(self.request("DELETE", path, _versioned(api_version)))

    def list(self, path: str, api_version: str, params: dict[str, Any] | None = None) -> list[dict]:
        return self.get_paginated(path, _versioned(api_version, params))

    def exists(self, path: str, api_version: str) -> bool:
        try:
            self.get(path, api_version)
        except NotFoundError:
            return False
        return True

    # -- long-running verbs ------------------------------------------------

    def begin_put(self, path: str, api_version: str, body: dict) -> "Operation":
        response = self.request("PUT", path, _versioned(api_version), json=body)
        return Operation.from_response(self, response, name=_name_of(path),
                                       resource_path=path, api_version=api_version)

    def begin_delete(self, path: str, api_version: str) -> "Operation":
        response = self.request("DELETE", path, _versioned(api_version))
        return Operation.from_response(self, response, name=_name_of(path))

    def begin_post(self, path: str, api_version: str, body: dict | None = None) -> "Operation":
        response = self.request("POST", path, _versioned(api_version), json=body)
        return Operation.from_response(self, response, name=_name_of(path))


def _versioned(api_version: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    return {**(params or {}), "api-version": api_version}


def _name_of(path: str) -> str:
    """Last meaningful segment of an ARM path (skips action suffixes)."""
    parts = [p for p in path.split("?")[0].split("/") if p]
    if len(parts) >= 2 and parts[-1] in ("start", "deallocate", "powerOff", "restart"):
        return parts[-2]
    return parts[-1] if parts else path


# ---------------------------------------------------------------------------
# Long-running operations
# ---------------------------------------------------------------------------

class Operation:
    """Tracks an ARM long-running operation.

    Polling prefers the ``Azure-AsyncOperation`` header (JSON ``status``),
    then ``Location`` (202 while running). A PUT answered without either header
    is polled through the resource's own ``provisioningState``.
    """

    def __init__(self, client: RestClient, name: str, status: str,
                 async_url: str | None = None, location_url: str | None = None,
                 resource_path: str | None = None, api_version: str | None = None,
                 result: dict | None = None) -> None:
        self._client = client
        self.name = name
        self.status = status
        self.async_url = async_url
        self.location_url = location_url
        self.resource_path = resource_path
        self.api_version = api_version
        self.result: dict = result or {}
        self.error: str | None = None

    @classmethod
    def from_response(cls, client: RestClient, response: requests.Response, name: str,
                      resource_path: str | None = None,
                      api_version: str | None = None) -> "Operation":
        body = _json(response)
        async_url = response.headers.get("Azure-AsyncOperation")
        location_url = response.headers.get("Location") if response.status_code == 202 else None

        if async_url or location_url:
            status = IN_PROGRESS
        else:
            state = _normalise(body.get("properties", {}).get("provisioningState"))
            # Only a PUT can be followed through the resource itself
            if state and state not in TERMINAL_STATES and resource_path:
                status = IN_PROGRESS
            else:
                status = state if state in TERMINAL_STATES else SUCCEEDED

        return cls(client, name, status, async_url=async_url, location_url=location_url,
                   resource_path=resource_path, api_version=api_version, result=body)

    @property
    def done(self) -> bool:
        return self.status in TERMINAL_STATES

    def poll(self) -> str:
        """Issue one status request and return the (possibly new) status."""
        if self.done:
            return self.status

        if self.async_url:
            body = _json(self._client.request("GET", self.async_url))
            self.status = _normalise(body.get("status")) or IN_PROGRESS
            if self.status in (FAILED, CANCELED):
                self.error = _operation_error(body)
            elif self.status == SUCCEEDED and self.resource_path:
                self.result = _json(self._client.request(
                    "GET", self.resource_path, _versioned(self.api_version)))
        elif self.location_url:
            try:
                response = self._client.request("GET", self.location_url)
            except AzureClientError as exc:
                # ARM reports a failed operation as an error status on the Location URL
                self.status = FAILED
                self.error = str(exc)
                return self.status
            if response.status_code != 202:
                self.status = SUCCEEDED
                self.result = _json(response)
        elif self.resource_path:
            body = _json(self._client.request(
                "GET", self.resource_path, _versioned(self.api_version)))
            state = _normalise(body.get("properties", {}).get("provisioningState"))
            if state in TERMINAL_STATES:
                self.status = state
                self.result = body
        return self.status

    def wait(self, timeout: float = 900, poll_interval: float = 5) -> dict:
        """Block until the operation is terminal and return its result.

        Raises:
            OperationFailedError:  the operation ended Failed or Canceled
            OperationTimeoutError: *timeout* seconds elapsed first
        """
        deadline = time.monotonic() + timeout
        while not self.done:
            if time.monotonic() >= deadline:
                raise OperationTimeoutError(
                    f"Operation on '{self.name}' still running after {timeout:g}s"
                )
            time.sleep(poll_interval)
            self.poll()

        if self.status != SUCCEEDED:
            raise OperationFailedError(
                f"Operation on '{self.name}' ended {self.status}"
                + (f": {self.error}" if self.error else "")
            )
        return self.result


def wait_all(operations: Iterable[Operation], timeout: float = 900,
             poll_interval: float = 5) -> dict[str, str]:
    """Poll several operations until all are terminal.

    Never raises for an individual failure; returns ``{name: status}`` where
    status is a terminal state or ``TimedOut``.
    """
    operations = list(operations)
    deadline = time.monotonic() + timeout
    pending = [op for op in operations if not op.done]

    while pending:
        if time.monotonic() >= deadline:
            break
        time.sleep(poll_interval)
        for op in pending:
            try:
                op.poll()
            except AzureClientError as exc:
                logger.warning("Polling '%s' failed: %s", op.name, exc)
                op.status = FAILED
                op.error = str(exc)
            if op.done:
                logger.info("Operation on '%s' finished: %s", op.name, op.status)
        pending = [op for op in pending if not op.done]

    return {op.name: (op.status if op.done else TIMED_OUT) for op in operations}


def _normalise(status: str | None) -> str | None:
    if not status:
        return None
    for known in (SUCCEEDED, FAILED, CANCELED, IN_PROGRESS):
        if status.lower() == known.lower():
            return known
    return status


def _operation_error(body: dict) -> str | None:
    error = body.get("error")
    if isinstance(error, dict):
        return f"{error.get('code')}: {error.get('message')}"
    return None


# ---------------------------------------------------------------------------
# Microsoft Graph
# ---------------------------------------------------------------------------

class GraphClient(RestClient):
    """Client for the Microsoft Graph v1.0 API (directory users and objects)."""

    def __init__(self, token: str, timeout: int = 30, base_url: str = GRAPH_URL) -> None:
        super().__init__(base_url, token, timeout)

    def get(self, path: str, params: dict[str, Any] | None = None) -> dict:
        return _json(self.request("GET", path, params))

    def post(self, path: str, body: dict) -> dict:
        return _json(self.request("POST", path, json=body))

    def patch(self, path: str, body: dict) -> dict:
        return _json(self.request("PATCH", path, json=body))

    def delete(self, path: str) -> None:
        self.request("DELETE", path)

    def list(self, path: str, params: dict[str, Any] | None = None) -> list[dict]:
        return self.get_paginated(path, params)

    def get_by_ids(self, ids: Iterable[str], types: list[str] | None = None) -> list[dict]:
        """Resolve directory object ids, batching ``getByIds`` 1000 ids at a time.

        Ids that do not exist in the directory are simply absent from the result.
        """
        ids = list(dict.fromkeys(ids))
        objects: list[dict] = []
        for start in range(0, len(ids), GET_BY_IDS_BATCH):
            body: dict[str, Any] = {"ids": ids[start:start + GET_BY_IDS_BATCH]}
            if types:
                body["types"] = types
            objects.extend(self.post("/directoryObjects/getByIds", body).get("value", []))
        return objects
