"""
Records exchanged between Auth0, Grafana and the sync passes.

Nothing here is persisted: orgs, users and identity records are fetched
fresh every cycle. The only long-lived state is AdminMembershipCache.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional


@dataclass(frozen=True)
class DashboardOrg:
    id: int
    name: str

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DashboardOrg":
        return cls(id=data["id"], name=data.get("name") or "")


@dataclass(frozen=True)
class DashboardUser:
    id: int
    email: Optional[str]
    login: Optional[str]

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DashboardUser":
        return cls(id=data["id"], email=data.get("email"), login=data.get("login"))

    @property
    def is_malformed(self) -> bool:
        # Grafana falls back to the login when no email was supplied at signup
        return not self.email or "@" not in self.email or self.email == self.login


@dataclass(frozen=True)
class IdentityRecord:
    username: Optional[str]
    email: Optional[str]
    name: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "IdentityRecord":
        return cls(username=data.get("username"), email=data.get("email"), name=data.get("name"))

    @property
    def display_name(self) -> Optional[str]:
        return self.username or self.name


@dataclass(frozen=True)
class DatasourceTemplate:
    name: str
    type: str
    url: str
    access: str = "proxy"
    read_only: bool = False
    is_default: bool = False
    json_data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """Grafana's POST /api/datasources body for this template."""
        return {
            "name": self.name,
            "type": self.type,
            "url": self.url,
            "access": self.access,
            "readOnly": self.read_only,
            "isDefault": self.is_default,
            "jsonData": dict(self.json_data),
        }


DATASOURCE_TEMPLATES = (
    DatasourceTemplate(
        name="ScreepsPlus-Graphite",
        type="graphite",
        url="https://carbon.ags131.com/",
        access="direct",
        read_only=True,
        is_default=True,
        json_data={"graphiteVersion": "1.1"},
    ),
)


class AdminMembershipCache:
    """
    Org ids where the sync account is known to be an Admin.

    Entries never expire unless ttl_seconds is set. Revoking the account's
    admin role in Grafana is not noticed until reset() or expiry.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._confirmed: Dict[int, float] = {}

    def is_admin(self, org_id: int) -> bool:
        confirmed_at = self._confirmed.get(org_id)
        if confirmed_at is None:
            return False
        if self.ttl_seconds is not None and self._clock() - confirmed_at > self.ttl_seconds:
            del self._confirmed[org_id]
            return False
        return True

    def mark_admin(self, org_id: int) -> None:
        self._confirmed[org_id] = self._clock()

    def reset(self) -> None:
        self._confirmed.clear()

    def __len__(self) -> int:
        return len(self._confirmed)
