#!/usr/bin/env python3
"""
sync_auth0_grafana.py

Continuous Auth0 -> Grafana reconciliation.

Every cycle:
  1. repair Grafana users with a missing/broken email from Auth0
  2. enroll the Grafana account as Admin of every org and create the
     stats datasource where it is missing
  3. wait SYNC_INTERVAL_SECONDS

An Auth0 401 during step 1 re-authenticates, skips step 2 and starts the
next cycle after RATE_LIMIT_BACKOFF_SECONDS. Any other unhandled error stops the process.
Safe testing: DRY_RUN=1 logs Grafana writes instead of sending them.
"""

import logging
import signal
import threading
from typing import Callable, Optional

import auth0_client
from auth0_client import Auth0Client
from datasource_sync import DatasourceProvisioner
from grafana_client import GrafanaClient
from sync_config import SyncConfig
from sync_errors import SyncError
from sync_models import AdminMembershipCache
from user_sync import UserReconciler

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

log = logging.getLogger("auth0-grafana-sync")


class SyncDriver:
    def __init__(
        self,
        config: SyncConfig,
        authenticate: Callable[[SyncConfig], Auth0Client] = auth0_client.authenticate,
        grafana: Optional[GrafanaClient] = None,
        cache: Optional[AdminMembershipCache] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.config = config
        self._authenticate = authenticate
        self.grafana = grafana or GrafanaClient(
            config.grafana_url,
            config.grafana_username,
            config.grafana_password,
            timeout=config.http_timeout,
            dry_run=config.dry_run,
        )
        self.cache = cache if cache is not None else AdminMembershipCache()
        self.stop_event = stop_event or threading.Event()
        self.users = UserReconciler(self.grafana, config.rate_limit_backoff)
        self.datasources = DatasourceProvisioner(
            self.grafana,
            admin_login=config.grafana_username,
            signing_secret=config.jwt_secret,
            signing_algorithm=config.jwt_algorithm,
            cache=self.cache,
        )
        self.auth0: Optional[Auth0Client] = None
        self.cycles = 0

    def reauthenticate(self) -> None:
        self.auth0 = self._authenticate(self.config)

    def run_cycle(self) -> bool:
        """Run one cycle. Returns False when it ended early to re-authenticate."""
        if self.auth0 is None:
            self.reauthenticate()
        self.cycles += 1
        try:
            self.users.run(self.auth0)
        except SyncError as e:
            if not e.is_identity_auth_failure:
                raise
            log.warning("Auth0 rejected the access token (%s), re-authenticating", e.status)
            self.reauthenticate()
            return False
        self.datasources.run()
        return True

    def run_forever(self) -> None:
        self.reauthenticate()
        while not self.stop_event.is_set():
            if self.run_cycle():
                self.stop_event.wait(self.config.sync_interval)
            else:
                # back-to-back re-authentications are RATE_LIMIT_BACKOFF_SECONDS apart
                self.stop_event.wait(self.config.rate_limit_backoff)
        log.info("Stopped after %d cycles (%d orgs with confirmed Admin)", self.cycles, len(self.cache))

    def stop(self) -> None:
        self.stop_event.set()


def main() -> None:
    config = SyncConfig.from_env()
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)
    log.info("Starting Auth0 -> Grafana sync against %s (DRY_RUN=%s)", config.grafana_url, config.dry_run)

    driver = SyncDriver(config)

    def _handle_signal(signum, frame):
        log.info("Received signal %s, stopping", signum)
        driver.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    driver.run_forever()


if __name__ == "__main__":
    main()
