import logging
from typing import Any, Dict, List

from core.config import settings
from core.errors import ConfigValidationError, PayloadError

from .models import BadgeId, TenantId, condition_id_for
from .schemas import (
    BadgeConfigForm,
    DynamicBlockRequest,
    DynamicBlockResponse,
    Interaction,
    InteractionResponseData,
)
from .service import BadgeOrchestrationService

log = logging.getLogger("uvicorn.error").getChild("badges.interactions")

SELECT_BADGE = "select-badge"
SAVE_BADGE_CONFIG = "save-badge-config"


def _response(app_id: str, interaction_id: str, interactions: List[Interaction], status: str = "SUCCEEDED") -> DynamicBlockResponse:
    return DynamicBlockResponse(
        status=status,
        data=InteractionResponseData(appId=app_id, interactionId=interaction_id, interactions=interactions),
    )


def _error_toast(app_id: str, interaction_id: str, message: str) -> DynamicBlockResponse:
    # the platform only renders the toast for SUCCEEDED responses
    return _response(
        app_id,
        interaction_id,
        [
            Interaction(
                id=f"{interaction_id}-error-toast",
                type="OPEN_TOAST",
                props={"title": "Error", "description": message, "status": "error"},
            )
        ],
    )


def _reload(interaction_id: str) -> Interaction:
    return Interaction(id=interaction_id, type="RELOAD", props={"dynamicBlockKeys": [interaction_id]})


class InteractionService:
    """Backs the app settings block: badge selection and badge rule editing."""

    def __init__(self, orchestration: BadgeOrchestrationService):
        self.orchestration = orchestration
        self.store = orchestration.store

    def get_settings_block(self, body: DynamicBlockRequest) -> DynamicBlockResponse:
        if not body.networkId:
            raise PayloadError("Missing networkId in request")
        if body.data.callbackId:
            return self.handle_callback(body)

        tenant_id = TenantId(body.networkId)
        with self.store.lock(tenant_id):
            badges = self.store.get_available_badges(tenant_id)
            selected_id = self.store.get_selected_badge(tenant_id)
            config = self.store.get_badge_config(tenant_id, selected_id) if selected_id else None
            condition = config.conditions.get(condition_id_for(selected_id)) if config else None
            props: Dict[str, Any] = {
                "selectBadgeCallbackId": SELECT_BADGE,
                "saveBadgeConfigCallbackId": SAVE_BADGE_CONFIG,
                "postDaysWindowLimit": settings.post_days_window_limit,
                "badges": [{"id": b.id, "name": b.name, "active": b.active} for b in badges.values()],
                "selectedBadge": selected_id if selected_id in badges else None,
                "ifValue": condition.if_threshold if condition else "",
                "inValue": condition.in_days if condition else "",
            }

        interaction_id = body.data.interactionId
        return _response(body.data.appId, interaction_id, [Interaction(id=interaction_id, type="SHOW", props=props)])

    def handle_callback(self, body: DynamicBlockRequest) -> DynamicBlockResponse:
        app_id = body.data.appId
        interaction_id = body.data.interactionId
        callback_id = body.data.callbackId or ""
        if not body.networkId:
            return _error_toast(app_id, interaction_id, "Missing networkId in request")

        tenant_id = TenantId(body.networkId)
        if callback_id.startswith(SELECT_BADGE):
            return self._select_badge(tenant_id, body)
        if callback_id == SAVE_BADGE_CONFIG:
            return self._save_badge_config(tenant_id, body)

        log.warning("Unknown interaction callback %r (network=%s)", callback_id, tenant_id)
        return _response(app_id, interaction_id, [], status="FAILED")

    def _select_badge(self, tenant_id: TenantId, body: DynamicBlockRequest) -> DynamicBlockResponse:
        badge_id = BadgeId(body.data.callbackId[len(SELECT_BADGE):].lstrip("_"))
        with self.store.lock(tenant_id):
            self.store.set_selected_badge(tenant_id, badge_id or None)
        return _response(body.data.appId, body.data.interactionId, [_reload(body.data.interactionId)])

    def _save_badge_config(self, tenant_id: TenantId, body: DynamicBlockRequest) -> DynamicBlockResponse:
        app_id = body.data.appId
        interaction_id = body.data.interactionId
        try:
            form = BadgeConfigForm.parse_inputs(body.data.inputs)
        except ConfigValidationError as exc:
            log.info("Rejected badge config for network %s: %s (%s)", tenant_id, exc.message, exc.field)
            return _error_toast(app_id, interaction_id, f"Invalid form data: {exc.message}")

        self.orchestration.on_config_saved(tenant_id, form.to_badge_config())
        return _response(
            app_id,
            interaction_id,
            [
                Interaction(
                    id=f"{interaction_id}-toast",
                    type="OPEN_TOAST",
                    props={
                        "status": "success",
                        "title": "Badge Configuration Saved",
                        "description": f'Successfully saved badge configuration for "{form.badge_name}"',
                    },
                ),
                _reload(interaction_id),
            ],
        )
