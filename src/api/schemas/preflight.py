from typing import Any

from pydantic import BaseModel, Field

from src.domain.enums.smart_listing import IssueSeverity, IssueType, PatchTarget


class FulfillmentProfileSchema(BaseModel):
    pickup_enabled: bool = False
    shipping_enabled: bool = False


class PreflightRequestBody(BaseModel):
    marketplaces: list[str] = Field(min_length=1)
    general_form: dict[str, Any]
    marketplace_forms: dict[str, dict[str, Any]] = Field(default_factory=dict)
    marketplace_defaults: dict[str, dict[str, Any]] = Field(default_factory=dict)
    fulfillment_profile: FulfillmentProfileSchema | None = None
    general_form_baseline: dict[str, Any] | None = None
    # Flag marketplaces without an active credential
    check_connections: bool = True

    non_leaf_category_ids: dict[str, list[str]] = Field(default_factory=dict)
    ebay_required_aspects: list[str] = Field(default_factory=list)
    ebay_items_included_required: bool = False
    ebay_type_aspect: str | None = None
    ebay_type_values: list[str] = Field(default_factory=list)


class FieldOptionSchema(BaseModel):
    id: str
    label: str


class ValidationIssueResponse(BaseModel):
    marketplace: str
    field: str
    patch_target: PatchTarget
    message: str
    severity: IssueSeverity
    issue_type: IssueType
    options: list[FieldOptionSchema] = Field(default_factory=list)
    suggested_value: Any = None
    confidence: float = 0.0
    reasoning: str = ""


class PreflightResponse(BaseModel):
    ready: list[str]
    fixes_needed: list[ValidationIssueResponse]
    blocking_count: int
    suggestion_count: int
    summary: str
