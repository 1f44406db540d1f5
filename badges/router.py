import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse

from core.errors import PayloadError
from core.security import verify_webhook

from .interactions import InteractionService
from .models import AvailableBadge, MemberId, Post, TenantId
from .schemas import DynamicBlockRequest, WebhookRequest, WebhookResponse
from .service import BadgeOrchestrationService

log = logging.getLogger("uvicorn.error").getChild("badges.router")

router = APIRouter(tags=["webhooks"])

BADGE_EVENTS = ("badge.created", "badge.updated", "badge.deleted")
SUSPEND_EVENTS = ("member.suspended", "member.deleted", "sso_membership.deleted")
UNSUSPEND_EVENTS = ("member.unsuspended",)
POST_EVENTS = ("post.published", "post.unhidden", "post.hidden", "post.unpublished", "post.deleted")


def get_orchestration(request: Request) -> BadgeOrchestrationService:
    return request.app.state.orchestration


def get_interactions(request: Request) -> InteractionService:
    return request.app.state.interactions


def _ack(type_: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return WebhookResponse(type=type_, data=data or {}).model_dump(exclude_none=True)


def _object(body: WebhookRequest) -> Dict[str, Any]:
    obj = body.data.get("object")
    if not isinstance(obj, dict) or not obj.get("id"):
        raise PayloadError(f"{body.data.get('name')} webhook without object id")
    return obj


def _handle_subscription(service: BadgeOrchestrationService, tenant_id: TenantId, body: WebhookRequest) -> None:
    name = body.data.get("name")
    if name in BADGE_EVENTS:
        badge = AvailableBadge.from_dict(_object(body))
        if name == "badge.created":
            service.on_badge_created(tenant_id, badge)
        elif name == "badge.updated":
            service.on_badge_updated(tenant_id, badge)
        else:
            service.on_badge_deleted(tenant_id, badge)
    elif name in SUSPEND_EVENTS:
        service.on_member_suspended(tenant_id, MemberId(str(_object(body)["id"])))
    elif name in UNSUSPEND_EVENTS:
        service.on_member_unsuspended(tenant_id, MemberId(str(_object(body)["id"])))
    elif name in POST_EVENTS:
        post = Post.from_dict(_object(body))
        log.info("Received %s for post %s (network=%s)", name, post.id, tenant_id)
        service.on_content_changed(tenant_id, post, deleted=name == "post.deleted")
    else:
        log.debug("Ignoring subscription %s (network=%s)", name, tenant_id)


@router.post("/webhook", dependencies=[Depends(verify_webhook)])
def receive_webhook(
    body: WebhookRequest,
    background: BackgroundTasks,
    service: BadgeOrchestrationService = Depends(get_orchestration),
):
    log.info("Webhook received (type=%s, network=%s)", body.type, body.networkId)

    if body.type == "TEST":
        return _ack(body.type, {"challenge": body.data.get("challenge")})
    if body.type == "INTERACTION":
        return _ack(body.type)
    if body.type not in ("GET_SETTINGS", "UPDATE_SETTINGS", "SUBSCRIPTION", "APP_INSTALLED", "APP_UNINSTALLED"):
        log.warning("Unknown webhook type %s", body.type)
        return WebhookResponse(
            type="UNKNOWN",
            status="FAILED",
            errorCode="UNKNOWN_TYPE",
            errorMessage="Unknown webhook type",
        ).model_dump(exclude_none=True)

    if not body.networkId:
        # acknowledged so the platform does not keep redelivering it
        log.warning("%s webhook missing networkId", body.type)
        return _ack(body.type)
    tenant_id = TenantId(body.networkId)

    if body.type == "GET_SETTINGS":
        return _ack(body.type, service.get_settings(tenant_id))
    if body.type == "UPDATE_SETTINGS":
        return _ack(body.type, service.on_settings_updated(tenant_id, body.data.get("settings")))
    if body.type == "APP_INSTALLED":
        # install pages through remote posts; answer first
        background.add_task(service.install, tenant_id)
        return _ack(body.type)
    if body.type == "APP_UNINSTALLED":
        service.uninstall(tenant_id)
        return _ack(body.type)

    try:
        _handle_subscription(service, tenant_id, body)
    except (PayloadError, KeyError, TypeError, ValueError) as exc:
        log.warning("Malformed %s webhook (network=%s): %s", body.data.get("name"), tenant_id, exc)
    return _ack("SUBSCRIPTION")


@router.post("/dynamic-block/app-settings")
def app_settings_block(
    body: DynamicBlockRequest,
    interactions: InteractionService = Depends(get_interactions),
):
    try:
        return interactions.get_settings_block(body).model_dump()
    except PayloadError as exc:
        log.warning("Rejected dynamic block request: %s", exc)
        return JSONResponse(exc.to_dict(), status_code=400)
