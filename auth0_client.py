"""
Auth0 Management API access: client-credentials exchange and user lookups.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from sync_config import SyncConfig
from sync_errors import ErrorKind, Source, SyncError, decode_json
from sync_models import IdentityRecord

log = logging.getLogger("auth0-grafana-sync.auth0")


def get_auth0_access_token(config: SyncConfig, session: Optional[requests.Session] = None) -> Dict[str, str]:
    # Client credentials flow against the Management API audience
    data = {
        "client_id": config.auth0_client_id,
        "client_secret": config.auth0_client_secret,
        "audience": config.auth0_audience,
        "grant_type": "client_credentials",
    }
    http = session or requests
    try:
        r = http.post(config.auth0_token_url, json=data, timeout=config.http_timeout)
    except requests.RequestException as e:
        raise SyncError.from_exception(Source.IDENTITY_PROVIDER, e) from e
    j = decode_json(Source.IDENTITY_PROVIDER, r)
    if not isinstance(j, dict) or not j.get("access_token"):
        raise SyncError(ErrorKind.VALIDATION, Source.IDENTITY_PROVIDER, "auth0 token response has no access_token", r.status_code, j)
    return {"access_token": j["access_token"], "token_type": j.get("token_type") or "Bearer"}


def authenticate(config: SyncConfig, session: Optional[requests.Session] = None) -> "Auth0Client":
    """Exchange client credentials for a token and return a client using it."""
    token = get_auth0_access_token(config, session)
    log.info("Got Auth0 access token for %s", config.auth0_domain)
    client = Auth0Client(config.auth0_base_url, timeout=config.http_timeout, session=session)
    client.session.headers["Authorization"] = f"{token['token_type']} {token['access_token']}"
    return client


def lookup_query(email: Optional[str], login: Optional[str]) -> str:
    if email and "@" in email:
        return f'email:"{email}"'
    return f'nickname:"{login}"'


class Auth0Client:
    def __init__(self, base_url: str, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("Accept", "application/json")

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            r = self.session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise SyncError.from_exception(Source.IDENTITY_PROVIDER, e) from e
        return decode_json(Source.IDENTITY_PROVIDER, r)

    def search_users(self, query: str) -> List[IdentityRecord]:
        data = self._get("/api/v2/users", params={"q": query})
        if not isinstance(data, list):
            raise SyncError(ErrorKind.VALIDATION, Source.IDENTITY_PROVIDER, f"auth0 user search returned {type(data).__name__}", body=data)
        return [IdentityRecord.from_api(u) for u in data]

    def find_user(self, email: Optional[str], login: Optional[str]) -> Optional[IdentityRecord]:
        """First Auth0 user matching the Grafana email (or login when the email is unusable)."""
        matches = self.search_users(lookup_query(email, login))
        return matches[0] if matches else None
