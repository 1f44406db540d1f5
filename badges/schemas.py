from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.config import settings
from core.errors import ConfigValidationError

from .models import BadgeConfig, BadgeId, Condition, condition_id_for


class WebhookRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    networkId: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    currentSettings: Optional[List[Dict[str, Any]]] = None


class WebhookResponse(BaseModel):
    type: str
    status: Literal["SUCCEEDED", "FAILED"] = "SUCCEEDED"
    data: Dict[str, Any] = Field(default_factory=dict)
    errorCode: Optional[str] = None
    errorMessage: Optional[str] = None


class InteractionData(BaseModel):
    model_config = ConfigDict(extra="allow")

    interactionId: str = ""
    appId: str = ""
    callbackId: Optional[str] = None
    dynamicBlockKey: Optional[str] = None
    inputs: Optional[Dict[str, Any]] = None
    preview: Optional[bool] = None
    actorId: Optional[str] = None


class DynamicBlockRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    networkId: Optional[str] = None
    data: InteractionData = Field(default_factory=InteractionData)


class Interaction(BaseModel):
    id: str
    type: str
    props: Dict[str, Any] = Field(default_factory=dict)


class InteractionResponseData(BaseModel):
    appId: str
    interactionId: str
    interactions: List[Interaction] = Field(default_factory=list)


class DynamicBlockResponse(BaseModel):
    type: Literal["INTERACTION"] = "INTERACTION"
    status: Literal["SUCCEEDED", "FAILED"] = "SUCCEEDED"
    data: InteractionResponseData


class BadgeConfigForm(BaseModel):
    """Inputs of the settings form's "save badge config" action."""

    badge_id: str = Field(..., alias="badge-id", min_length=1)
    badge_name: str = Field(..., alias="badge-name", min_length=1)
    if_value: int = Field(..., alias="if-value", ge=0)
    in_value: int = Field(..., alias="in-value", ge=1)

    @classmethod
    def parse_inputs(cls, inputs: Optional[Dict[str, Any]]) -> "BadgeConfigForm":
        if not inputs:
            raise ConfigValidationError("inputs", "Missing form data")
        try:
            form = cls.model_validate(inputs)
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "inputs"
            raise ConfigValidationError(field, first.get("msg", "Invalid form data")) from exc
        if form.in_value > settings.post_days_window_limit:
            raise ConfigValidationError(
                "in-value", f"Must be at most {settings.post_days_window_limit} days"
            )
        return form

    def to_badge_config(self) -> BadgeConfig:
        badge_id = BadgeId(self.badge_id)
        return BadgeConfig(
            badge_id=badge_id,
            active=True,
            conditions={
                condition_id_for(badge_id): Condition(if_threshold=self.if_value, in_days=self.in_value),
            },
        )
