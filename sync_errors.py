"""
Error taxonomy shared by the Auth0 and Grafana clients.

Every HTTP failure is turned into a SyncError tagged with its kind and the
system it came from, so call sites match on `err.kind` instead of raw codes.
"""

import enum
from typing import Any, Optional

import requests


class ErrorKind(enum.Enum):
    TRANSPORT = "transport"
    AUTHORIZATION = "authorization"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"


class Source(enum.Enum):
    IDENTITY_PROVIDER = "auth0"
    DASHBOARD = "grafana"


def classify_status(status: int) -> ErrorKind:
    if status == 401:
        return ErrorKind.AUTHORIZATION
    if status == 429:
        return ErrorKind.RATE_LIMIT
    if status >= 500:
        return ErrorKind.TRANSPORT
    return ErrorKind.VALIDATION


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or "<no body>"


class SyncError(Exception):
    def __init__(
        self,
        kind: ErrorKind,
        source: Source,
        message: str,
        status: Optional[int] = None,
        body: Any = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.source = source
        self.status = status
        self.body = body

    @classmethod
    def from_response(cls, source: Source, response: requests.Response) -> "SyncError":
        status = response.status_code
        method = response.request.method if response.request is not None else "HTTP"
        message = f"{source.value} {method} {response.url} -> {status}"
        return cls(classify_status(status), source, message, status, _response_body(response))

    @classmethod
    def from_exception(cls, source: Source, exc: requests.RequestException) -> "SyncError":
        return cls(ErrorKind.TRANSPORT, source, f"{source.value} request failed: {exc}")

    @property
    def is_identity_auth_failure(self) -> bool:
        return self.kind is ErrorKind.AUTHORIZATION and self.source is Source.IDENTITY_PROVIDER

    def __str__(self) -> str:
        text = super().__str__()
        if self.body is not None:
            return f"{text} body={self.body}"
        return text


def decode_json(source: Source, response: requests.Response) -> Any:
    """Raise SyncError for HTTP errors and for bodies that are not JSON."""
    if response.status_code >= 400:
        raise SyncError.from_response(source, response)
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError as e:
        # e.g. an HTML login page from a proxy in front of the API
        raise SyncError(
            ErrorKind.TRANSPORT,
            source,
            f"{source.value} {response.url} returned a non-JSON body: {e}",
            status=response.status_code,
            body=response.text[:200] or "<no body>",
        ) from e
