"""
Per-org datasource credentials.

The stats backend accepts basic auth where the password is a JWT naming the
org user and granting read access. Tokens carry an issue time but no expiry.
"""

import time
from typing import Dict, Optional, Union

from authlib.jose import jwt
from authlib.jose.errors import JoseError

READ_SCOPE = ["read:stats"]


class SigningError(ValueError):
    pass


def sign_datasource_token(
    username: str,
    secret: Union[str, bytes],
    algorithm: str = "HS256",
    issued_at: Optional[int] = None,
) -> str:
    header = {"alg": algorithm}
    payload = {
        "username": username,
        "scope": list(READ_SCOPE),
        "iat": int(time.time()) if issued_at is None else issued_at,
    }
    try:
        token = jwt.encode(header, payload, secret)
    except (JoseError, ValueError) as e:
        raise SigningError(f"Cannot sign datasource token with {algorithm}: {e}") from e
    return token.decode("utf-8")


def datasource_credentials(org_name: str, secret: Union[str, bytes], algorithm: str = "HS256") -> Dict[str, object]:
    username = org_name.lower()
    return {
        "basicAuth": True,
        "basicAuthUser": username,
        "basicAuthPassword": sign_datasource_token(username, secret, algorithm),
    }
