"""
Grafana HTTP API client (basic auth, server admin account).

Grafana scopes datasource endpoints to the caller's "current org". The
client remembers which org it last switched to and refuses datasource
calls made for any other org.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from sync_errors import ErrorKind, Source, SyncError, decode_json
from sync_models import DashboardOrg, DashboardUser

log = logging.getLogger("auth0-grafana-sync.grafana")


class ActiveOrgMismatch(RuntimeError):
    def __init__(self, wanted: int, active: Optional[int]):
        super().__init__(f"datasource call for org {wanted} while active org is {active}")
        self.wanted = wanted
        self.active = active


class GrafanaClient:
    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: Optional[float] = None,
        dry_run: bool = False,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.timeout = timeout
        self.dry_run = dry_run
        self.session = session or requests.Session()
        self.session.auth = (username, password)
        self.session.headers.update({"Accept": "application/json", "Content-Type": "application/json"})
        self.active_org_id: Optional[int] = None

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise SyncError.from_exception(Source.DASHBOARD, e) from e
        return decode_json(Source.DASHBOARD, r)

    def _list(self, path: str) -> List[Dict[str, Any]]:
        data = self._request("GET", path)
        if not isinstance(data, list):
            raise SyncError(ErrorKind.VALIDATION, Source.DASHBOARD, f"grafana GET {path} returned {type(data).__name__}", body=data)
        return data

    def _write(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        if self.dry_run:
            log.info("[DRY RUN] Would %s %s with %s", method, path, _redact(payload))
            return {}
        return self._request(method, path, payload)

    def _require_active(self, org_id: int) -> None:
        if self.active_org_id != org_id:
            raise ActiveOrgMismatch(org_id, self.active_org_id)

    # reads

    def list_orgs(self) -> List[DashboardOrg]:
        return [DashboardOrg.from_api(o) for o in self._list("/api/orgs")]

    def list_users(self) -> List[DashboardUser]:
        return [DashboardUser.from_api(u) for u in self._list("/api/users")]

    def list_datasources(self, org_id: int) -> List[Dict[str, Any]]:
        self._require_active(org_id)
        return self._list("/api/datasources")

    # writes

    def update_user(self, user_id: int, fields: Dict[str, Any]) -> Any:
        return self._write("PUT", f"/api/users/{user_id}", fields)

    def update_org(self, org_id: int, fields: Dict[str, Any]) -> Any:
        return self._write("PUT", f"/api/orgs/{org_id}", fields)

    def add_org_user(self, org_id: int, login_or_email: str, role: str = "Admin") -> Any:
        return self._write("POST", f"/api/orgs/{org_id}/users", {"loginOrEmail": login_or_email, "role": role})

    def switch_org(self, org_id: int) -> None:
        # sent even in dry-run mode, the datasource listing depends on it
        self.active_org_id = None
        self._request("POST", f"/api/user/using/{org_id}")
        self.active_org_id = org_id

    def create_datasource(self, org_id: int, payload: Dict[str, Any]) -> Any:
        self._require_active(org_id)
        return self._write("POST", "/api/datasources", payload)


def _redact(payload: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not payload or "basicAuthPassword" not in payload:
        return payload
    return {**payload, "basicAuthPassword": "***"}
