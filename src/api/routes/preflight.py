from fastapi import APIRouter, Depends

from src.api.dependencies import get_credentials, get_preflight_validator
from src.api.schemas.preflight import (
    FieldOptionSchema,
    PreflightRequestBody,
    PreflightResponse,
    ValidationIssueResponse,
)
from src.application.preflight.marketplace_rules import RuleOptions
from src.application.preflight.preflight_validator import PreflightRequest, PreflightValidator
from src.domain.entities.credential import Credential, is_connected
from src.domain.entities.validation import FieldOption, FulfillmentProfile, ValidationIssue

router = APIRouter(tags=["preflight"])


def _issue_to_response(issue: ValidationIssue) -> ValidationIssueResponse:
    suggested = issue.suggested_value
    if isinstance(suggested, FieldOption):
        suggested = {"id": suggested.id, "label": suggested.label}
    return ValidationIssueResponse(
        marketplace=issue.marketplace,
        field=issue.field,
        patch_target=issue.patch_target,
        message=issue.message,
        severity=issue.severity,
        issue_type=issue.issue_type,
        options=[FieldOptionSchema(id=o.id, label=o.label) for o in issue.options],
        suggested_value=suggested,
        confidence=issue.confidence,
        reasoning=issue.reasoning,
    )


@router.post("/preflight", response_model=PreflightResponse)
async def run_preflight(
    body: PreflightRequestBody,
    validator: PreflightValidator = Depends(get_preflight_validator),
    credentials: dict[str, Credential] = Depends(get_credentials),
) -> PreflightResponse:
    """Check which marketplaces are ready to list. Nothing is dispatched or persisted."""
    connected = None
    if body.check_connections:
        connected = {marketplace for marketplace, cred in credentials.items() if is_connected(cred)}

    profile = None
    if body.fulfillment_profile is not None:
        profile = FulfillmentProfile(
            pickup_enabled=body.fulfillment_profile.pickup_enabled,
            shipping_enabled=body.fulfillment_profile.shipping_enabled,
        )

    request = PreflightRequest(
        marketplaces=body.marketplaces,
        general_form=body.general_form,
        marketplace_forms=body.marketplace_forms,
        marketplace_defaults=body.marketplace_defaults,
        fulfillment_profile=profile,
        general_form_baseline=body.general_form_baseline,
        connected_marketplaces=connected,
        rule_options=RuleOptions(
            non_leaf_category_ids=body.non_leaf_category_ids,
            ebay_required_aspects=tuple(body.ebay_required_aspects),
            ebay_items_included_required=body.ebay_items_included_required,
            ebay_type_aspect=body.ebay_type_aspect,
            ebay_type_values=tuple(body.ebay_type_values),
        ),
    )
    result = await validator.validate(request)

    return PreflightResponse(
        ready=result.ready,
        fixes_needed=[_issue_to_response(issue) for issue in result.fixes_needed],
        blocking_count=result.blocking_count,
        suggestion_count=result.suggestion_count,
        summary=result.summary(),
    )
