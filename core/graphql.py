import base64
import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple

import requests

from core.config import settings
from core.errors import RemoteCallError

log = logging.getLogger("uvicorn.error").getChild("core.graphql")

LIMITED_TOKEN_QUERY = """
query limitedToken($context: PermissionContext!, $networkId: String!, $entityId: String!) {
  limitedToken(context: $context, networkId: $networkId, entityId: $entityId) {
    accessToken
  }
}
"""

# network tokens are reused until shortly before they expire
_token_cache: Dict[str, Tuple[str, float]] = {}
_token_lock = threading.Lock()


def _now() -> float:
    return time.time()


def _app_credentials() -> str:
    raw = f"{settings.client_id}:{settings.client_secret}".encode()
    return base64.b64encode(raw).decode()


def execute(query: str, variables: Optional[Dict[str, Any]] = None, token: Optional[str] = None) -> Dict[str, Any]:
    """POST a GraphQL document and return its ``data`` member.

    Raises ``RemoteCallError`` for transport failures, non-2xx responses and
    GraphQL ``errors`` payloads.
    """
    headers = {"Content-Type": "application/json"}
    headers["Authorization"] = f"Bearer {token}" if token else f"Basic {_app_credentials()}"
    try:
        r = requests.post(
            settings.graphql_url,
            json={"query": query, "variables": variables or {}},
            headers=headers,
            timeout=settings.http_timeout,
        )
        r.raise_for_status()
        body = r.json()
    except requests.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else None
        raise RemoteCallError(f"GraphQL request failed: {exc}", status_code=status) from exc
    except (requests.RequestException, ValueError) as exc:
        raise RemoteCallError(f"GraphQL request failed: {exc}") from exc

    errors = body.get("errors")
    if errors:
        messages = [str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors]
        log.error("GraphQL errors: %s", messages)
        raise RemoteCallError("; ".join(messages))
    return body.get("data") or {}


def get_network_token(network_id: str) -> str:
    with _token_lock:
        cached = _token_cache.get(network_id)
        if cached and _now() < cached[1]:
            return cached[0]

    data = execute(
        LIMITED_TOKEN_QUERY,
        {"context": "NETWORK", "networkId": network_id, "entityId": network_id},
    )
    token = (data.get("limitedToken") or {}).get("accessToken")
    if not token:
        raise RemoteCallError(f"No access token returned for network {network_id}")

    with _token_lock:
        _token_cache[network_id] = (token, _now() + settings.token_ttl_seconds)
    return token


def forget_network_token(network_id: str) -> None:
    with _token_lock:
        _token_cache.pop(network_id, None)
