"""
Make sure every Grafana org has the stats datasources.

For each org: enroll the sync account as Admin (once per process), switch
to the org, and create any template datasource whose name is missing.
Existing datasources are never modified. Failures stay with the org or
template they happened in.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from grafana_client import GrafanaClient
from sync_errors import SyncError
from sync_models import DATASOURCE_TEMPLATES, AdminMembershipCache, DashboardOrg, DatasourceTemplate
from token_signing import SigningError, datasource_credentials

log = logging.getLogger("auth0-grafana-sync.datasources")

ALREADY_MEMBER = 409


@dataclass
class ProvisionResult:
    orgs: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0


class DatasourceProvisioner:
    def __init__(
        self,
        grafana: GrafanaClient,
        admin_login: str,
        signing_secret: str,
        signing_algorithm: str = "HS256",
        cache: Optional[AdminMembershipCache] = None,
        templates: Sequence[DatasourceTemplate] = DATASOURCE_TEMPLATES,
    ):
        self.grafana = grafana
        self.admin_login = admin_login
        self.signing_secret = signing_secret
        self.signing_algorithm = signing_algorithm
        self.cache = cache if cache is not None else AdminMembershipCache()
        self.templates = tuple(templates)

    def run(self) -> ProvisionResult:
        result = ProvisionResult()
        try:
            orgs = self.grafana.list_orgs()
        except SyncError as e:
            log.error("Cannot list Grafana orgs: %s", e)
            return result

        for org in orgs:
            result.orgs += 1
            self._provision_org(org, result)
        return result

    def ensure_admin(self, org: DashboardOrg) -> None:
        if self.cache.is_admin(org.id):
            return
        try:
            self.grafana.add_org_user(org.id, self.admin_login, role="Admin")
        except SyncError as e:
            # retried next cycle either way
            if e.status == ALREADY_MEMBER:
                log.debug("%s already a member of org %s (%s)", self.admin_login, org.name, org.id)
            else:
                log.warning("Cannot add %s as Admin of org %s (%s): %s", self.admin_login, org.name, org.id, e)
            return
        self.cache.mark_admin(org.id)

    def _provision_org(self, org: DashboardOrg, result: ProvisionResult) -> None:
        self.ensure_admin(org)
        try:
            self.grafana.switch_org(org.id)
            existing = {ds.get("name") for ds in self.grafana.list_datasources(org.id)}
        except SyncError as e:
            log.error("Cannot read datasources for org %s (%s): %s", org.name, org.id, e)
            result.failed += 1
            return

        missing = [t for t in self.templates if t.name not in existing]
        for template in missing:
            payload = template.to_payload()
            try:
                payload.update(datasource_credentials(org.name, self.signing_secret, self.signing_algorithm))
                self.grafana.create_datasource(org.id, payload)
            except (SyncError, SigningError) as e:
                log.error("Cannot insert datasource %s for org %s (%s): %s", template.name, org.name, org.id, e)
                result.failed += 1
                continue
            log.info("Created datasource %s for org %s (%s)", template.name, org.name, org.id)
            result.created += 1
        result.skipped += len(self.templates) - len(missing)
