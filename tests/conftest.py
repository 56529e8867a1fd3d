import json

import pytest
import requests

from sync_config import SyncConfig
from sync_errors import ErrorKind, Source, SyncError


def make_response(status=200, body=None, method="GET", url="https://example.test/api", text=None):
    r = requests.Response()
    r.status_code = status
    r.url = url
    if text is not None:
        r._content = text.encode()
    else:
        r._content = b"" if body is None else json.dumps(body).encode()
    r.request = requests.Request(method, url).prepare()
    return r


def auth0_error(kind, status=None):
    return SyncError(kind, Source.IDENTITY_PROVIDER, f"auth0 -> {status}", status=status)


def grafana_error(kind, status=None, body=None):
    return SyncError(kind, Source.DASHBOARD, f"grafana -> {status}", status=status, body=body)


@pytest.fixture
def env():
    return {
        "AUTH0_CLIENT_ID": "client-id",
        "AUTH0_CLIENT_SECRET": "client-secret",
        "GRAFANA_URL": "http://grafana.test/",
        "GRAFANA_USERNAME": "admin",
        "GRAFANA_PASSWORD": "grafana-pw",
        "JWT_SECRET": "jwt-secret",
    }


@pytest.fixture
def config(env):
    return SyncConfig.from_env(env)


@pytest.fixture
def rate_limited():
    return auth0_error(ErrorKind.RATE_LIMIT, 429)
