"""
Environment configuration for the Auth0 -> Grafana sync.

Values come from the process environment, with a local .env file loaded
first (python-dotenv). Missing required settings fail at startup.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_AUTH0_DOMAIN = "screepsplus.auth0.com"

SIGNING_ALGORITHMS = ("HS256", "HS384", "HS512")

REQUIRED = (
    "AUTH0_CLIENT_ID",
    "AUTH0_CLIENT_SECRET",
    "GRAFANA_URL",
    "GRAFANA_USERNAME",
    "GRAFANA_PASSWORD",
    "JWT_SECRET",
)


def _number(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number, got {raw!r}")


@dataclass(frozen=True)
class SyncConfig:
    auth0_client_id: str
    auth0_client_secret: str = field(repr=False)
    grafana_url: str
    grafana_username: str
    grafana_password: str = field(repr=False)
    jwt_secret: str = field(repr=False)
    jwt_algorithm: str = "HS256"
    auth0_domain: str = DEFAULT_AUTH0_DOMAIN
    sync_interval: float = 10.0
    rate_limit_backoff: float = 1.0
    http_timeout: Optional[float] = 30.0
    dry_run: bool = False
    log_level: str = "INFO"

    @property
    def auth0_base_url(self) -> str:
        return f"https://{self.auth0_domain}"

    @property
    def auth0_token_url(self) -> str:
        return f"{self.auth0_base_url}/oauth/token"

    @property
    def auth0_audience(self) -> str:
        return f"{self.auth0_base_url}/api/v2/"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SyncConfig":
        if environ is None:
            load_dotenv()
            environ = os.environ

        missing = [k for k in REQUIRED if not environ.get(k)]
        if missing:
            raise RuntimeError(f"Missing required env vars: {', '.join(missing)}")

        algorithm = (environ.get("JWT_ALGORITHM") or "HS256").upper()
        if algorithm not in SIGNING_ALGORITHMS:
            raise RuntimeError(f"JWT_ALGORITHM must be one of {', '.join(SIGNING_ALGORITHMS)}, got {algorithm!r}")

        timeout = _number(environ, "HTTP_TIMEOUT", 30.0)
        return cls(
            auth0_client_id=environ["AUTH0_CLIENT_ID"],
            auth0_client_secret=environ["AUTH0_CLIENT_SECRET"],
            grafana_url=environ["GRAFANA_URL"].rstrip("/"),
            grafana_username=environ["GRAFANA_USERNAME"],
            grafana_password=environ["GRAFANA_PASSWORD"],
            jwt_secret=environ["JWT_SECRET"],
            jwt_algorithm=algorithm,
            auth0_domain=environ.get("AUTH0_DOMAIN") or DEFAULT_AUTH0_DOMAIN,
            sync_interval=_number(environ, "SYNC_INTERVAL_SECONDS", 10.0),
            rate_limit_backoff=_number(environ, "RATE_LIMIT_BACKOFF_SECONDS", 1.0),
            # 0 means "no timeout", i.e. whatever the transport does
            http_timeout=timeout or None,
            dry_run=environ.get("DRY_RUN", "0") == "1",
            log_level=(environ.get("LOG_LEVEL") or "INFO").upper(),
        )
