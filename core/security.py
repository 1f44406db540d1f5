import hashlib
import hmac
import logging

from fastapi import HTTPException, Request

from core.config import settings

log = logging.getLogger("uvicorn.error").getChild("core.security")

SIGNATURE_HEADER = "x-bettermode-signature"
TIMESTAMP_HEADER = "x-bettermode-request-timestamp"


def sign(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    return hmac.compare_digest(sign(body, secret), signature or "")


async def verify_webhook(request: Request) -> None:
    """FastAPI dependency rejecting unsigned webhook deliveries.

    Verification is skipped when no signing secret is configured.
    """
    secret = settings.signing_secret
    if not secret:
        return
    signature = request.headers.get(SIGNATURE_HEADER)
    timestamp = request.headers.get(TIMESTAMP_HEADER)
    if not signature or not timestamp:
        raise HTTPException(status_code=403, detail="Missing headers")
    body = await request.body()
    if not verify_signature(body, signature, secret):
        log.warning("Rejected webhook with invalid signature")
        raise HTTPException(status_code=403, detail="Invalid signature")
