"""
Repair Grafana users whose email is missing, not an email, or just the login.

Users that signed up through Auth0 sometimes land in Grafana with the login
copied into the email field, and Grafana auto-creates a personal org named
after that broken value. Each such user is looked up in Auth0 and the
Grafana user (and the matching org) rewritten from the Auth0 record.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from auth0_client import Auth0Client
from grafana_client import GrafanaClient
from sync_errors import ErrorKind, SyncError
from sync_models import DashboardOrg, DashboardUser, IdentityRecord

log = logging.getLogger("auth0-grafana-sync.users")


@dataclass
class UserSyncResult:
    malformed: int = 0
    repaired: int = 0
    unmatched: int = 0
    failed: int = 0


def malformed_users(users: List[DashboardUser]) -> List[DashboardUser]:
    return [u for u in users if u.is_malformed]


class UserReconciler:
    def __init__(
        self,
        grafana: GrafanaClient,
        rate_limit_backoff: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.grafana = grafana
        self.rate_limit_backoff = rate_limit_backoff
        self.sleep = sleep

    def run(self, auth0: Auth0Client) -> UserSyncResult:
        """
        One repair pass over every Grafana user.

        Raises SyncError for Auth0 authorization failures (the caller
        re-authenticates) and for Grafana failures while listing.
        """
        users = self.grafana.list_users()
        orgs = self.grafana.list_orgs()
        needs_updated = malformed_users(users)
        result = UserSyncResult(malformed=len(needs_updated))
        if not needs_updated:
            return result

        log.info("Updating %d users", len(needs_updated))
        for user in needs_updated:
            log.info("Attempting to update user %s", user.email or user.login)
            try:
                match = self._lookup(auth0, user)
            except SyncError as e:
                if e.kind is ErrorKind.AUTHORIZATION:
                    raise
                log.error("Auth0 lookup failed for user %s (%s): %s", user.login, user.id, e)
                result.failed += 1
                continue

            if match is None:
                log.info("No Auth0 user found for %s (%s)", user.login, user.id)
                result.unmatched += 1
                continue

            try:
                repaired = self._repair(user, match, orgs)
            except SyncError as e:
                if e.kind is ErrorKind.AUTHORIZATION:
                    raise
                log.error("Failed to update Grafana user %s (%s): %s", user.login, user.id, e)
                result.failed += 1
                continue
            if repaired:
                result.repaired += 1
            else:
                result.unmatched += 1

        log.info(
            "User sync complete: repaired=%s unmatched=%s failed=%s",
            result.repaired, result.unmatched, result.failed,
        )
        return result

    def _lookup(self, auth0: Auth0Client, user: DashboardUser) -> Optional[IdentityRecord]:
        while True:
            try:
                return auth0.find_user(user.email, user.login)
            except SyncError as e:
                if e.kind is not ErrorKind.RATE_LIMIT:
                    raise
                log.warning("Auth0 rate limited, retrying %s in %ss", user.login, self.rate_limit_backoff)
                self.sleep(self.rate_limit_backoff)

    def _repair(self, user: DashboardUser, match: IdentityRecord, orgs: List[DashboardOrg]) -> bool:
        fields = {
            "name": match.display_name,
            "login": match.username,
            "email": match.email,
        }
        # partial update: absent Auth0 values leave the Grafana field alone
        fields = {k: v for k, v in fields.items() if v is not None}
        if not fields:
            log.info("Auth0 record for %s (%s) has nothing to copy", user.login, user.id)
            return False

        org = _org_named(orgs, user.email)
        if org is not None and match.username:
            log.info("Renaming org %s (%s) to %s", org.name, org.id, match.username)
            self.grafana.update_org(org.id, {"name": match.username})
        self.grafana.update_user(user.id, fields)
        log.info("Updated user %s -> %s <%s>", user.id, match.username, match.email)
        return True


def _org_named(orgs: List[DashboardOrg], name: Optional[str]) -> Optional[DashboardOrg]:
    if not name:
        return None
    for org in orgs:
        if org.name == name:
            return org
    return None
