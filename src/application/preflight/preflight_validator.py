import inspect
from collections.abc import Awaitable, Callable, Mapping
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

import structlog

from src.application.interfaces.fill_oracle import FillOracle
from src.application.preflight.marketplace_rules import (
    MARKETPLACE_RULES,
    RuleOptions,
    is_blank,
    suggest_from_general,
    tag_limit_issue,
    vocabulary_suggestions,
)
from src.config import settings
from src.domain.entities.validation import (
    FulfillmentProfile,
    PreflightResult,
    ValidationIssue,
)
from src.domain.enums.marketplace import display_name
from src.domain.enums.smart_listing import IssueType, PatchTarget

logger = structlog.get_logger(__name__)

# Fields of the general form that change what gets listed
GENERAL_FORM_COMPARE_FIELDS = (
    "title",
    "description",
    "price",
    "condition",
    "brand",
    "category",
    "categoryId",
    "size",
    "color1",
    "color2",
    "zip",
    "quantity",
    "packageWeight",
    "packageLength",
    "packageWidth",
    "packageHeight",
    "packageDetails",
    "photos",
)

PatchCallback = Callable[[ValidationIssue, Any], "Awaitable[None] | None"]

_validation_in_progress: ContextVar[bool] = ContextVar("preflight_validation_in_progress", default=False)


class RecursiveValidationError(Exception):
    """A patch callback tried to start a validation pass from inside a running one."""

    def __init__(self) -> None:
        super().__init__("Patch callbacks must not re-run preflight validation")


@dataclass
class PreflightRequest:
    marketplaces: list[str]
    general_form: dict[str, Any]
    marketplace_forms: dict[str, dict[str, Any]] = field(default_factory=dict)
    # Saved per-marketplace boilerplate, e.g. shipping settings
    marketplace_defaults: dict[str, dict[str, Any]] = field(default_factory=dict)
    fulfillment_profile: FulfillmentProfile | None = None
    general_form_baseline: dict[str, Any] | None = None
    connected_marketplaces: set[str] | None = None
    rule_options: RuleOptions = field(default_factory=RuleOptions)

    def form_for(self, marketplace: str) -> dict[str, Any]:
        """Marketplace form with saved defaults filling its empty fields."""
        merged = dict(self.marketplace_defaults.get(marketplace, {}))
        for key, value in self.marketplace_forms.get(marketplace, {}).items():
            if not is_blank(value) or key not in merged:
                merged[key] = value
        return merged


def _photo_urls(photos: Any) -> list[str]:
    urls = []
    for photo in photos or []:
        if isinstance(photo, str):
            urls.append(photo)
        elif isinstance(photo, Mapping):
            urls.append(photo.get("url") or photo.get("imageUrl") or "")
    return [url for url in urls if url]


def general_form_changed(general: Mapping[str, Any], baseline: Mapping[str, Any] | None) -> bool:
    if baseline is None:
        return False
    for key in GENERAL_FORM_COMPARE_FIELDS:
        if key == "photos":
            if _photo_urls(baseline.get(key)) != _photo_urls(general.get(key)):
                return True
        elif str(baseline.get(key) or "") != str(general.get(key) or ""):
            return True
    return False


class PreflightValidator:
    """
    Decides which selected marketplaces can be listed right now.

    Issues are data, never exceptions. In apply-only mode, suggestions that clear the
    confidence threshold are handed to the caller's patch callback and dropped from the
    result; the callback must not re-enter ``validate``.
    """

    def __init__(
        self,
        fill_oracle: FillOracle | None = None,
        auto_apply_threshold: float | None = None,
    ) -> None:
        self._fill_oracle = fill_oracle
        self._threshold = (
            settings.auto_fill_confidence_threshold if auto_apply_threshold is None else auto_apply_threshold
        )

    async def validate(
        self,
        request: PreflightRequest,
        *,
        auto_apply: bool = False,
        on_apply_patch: PatchCallback | None = None,
    ) -> PreflightResult:
        if _validation_in_progress.get():
            raise RecursiveValidationError()

        token = _validation_in_progress.set(True)
        try:
            issues_by_marketplace = {
                marketplace: self._check_marketplace(marketplace, request)
                for marketplace in request.marketplaces
            }

            if self._fill_oracle is not None:
                await self._enrich_from_oracle(request, issues_by_marketplace)

            if auto_apply and on_apply_patch is not None:
                await self._auto_apply(issues_by_marketplace, on_apply_patch)

            result = PreflightResult()
            for marketplace in request.marketplaces:
                issues = issues_by_marketplace[marketplace]
                if issues:
                    result.fixes_needed.extend(issues)
                else:
                    result.ready.append(marketplace)

            logger.info(
                "preflight_completed",
                marketplaces=request.marketplaces,
                ready=result.ready,
                blocking=result.blocking_count,
                suggestions=result.suggestion_count,
            )
            return result
        finally:
            _validation_in_progress.reset(token)

    def _check_marketplace(self, marketplace: str, request: PreflightRequest) -> list[ValidationIssue]:
        general = request.general_form
        form = request.form_for(marketplace)
        issues: list[ValidationIssue] = []

        if general_form_changed(general, request.general_form_baseline):
            issues.append(
                ValidationIssue(
                    marketplace=marketplace,
                    field="_generalFormChanged",
                    patch_target=PatchTarget.GENERAL,
                    message=(
                        "You've changed the general listing details (title, price, description, etc.) "
                        "since opening this item. Please review before listing."
                    ),
                    issue_type=IssueType.INVALID,
                )
            )

        profile = request.fulfillment_profile
        if profile is None or not profile.is_configured:
            issues.append(
                ValidationIssue(
                    marketplace=marketplace,
                    field="_fulfillment",
                    patch_target=PatchTarget.GENERAL,
                    message="Set up your shipping and pickup preferences before your first listing.",
                )
            )

        if request.connected_marketplaces is not None and marketplace not in request.connected_marketplaces:
            issues.append(
                ValidationIssue(
                    marketplace=marketplace,
                    field="_connection",
                    patch_target=PatchTarget.MARKETPLACE,
                    message=f"{display_name(marketplace)} account not connected. Please connect in Settings.",
                    issue_type=IssueType.INVALID,
                )
            )

        tag_issue = tag_limit_issue(marketplace, general, form)
        if tag_issue is not None:
            issues.append(tag_issue)

        rules = MARKETPLACE_RULES.get(marketplace)
        if rules is None:
            issues.append(
                ValidationIssue(
                    marketplace=marketplace,
                    field="_marketplace",
                    patch_target=PatchTarget.GENERAL,
                    message=f"Unknown marketplace: {marketplace}",
                    issue_type=IssueType.INVALID,
                )
            )
        else:
            try:
                issues.extend(rules(general, form, request.rule_options))
            except Exception as exc:
                logger.exception("preflight_rule_failed", marketplace=marketplace)
                issues.append(
                    ValidationIssue(
                        marketplace=marketplace,
                        field="_error",
                        patch_target=PatchTarget.GENERAL,
                        message=f"Validation error: {exc}",
                        issue_type=IssueType.INVALID,
                    )
                )

        for issue in issues:
            if not issue.has_suggestion:
                suggestion = suggest_from_general(issue, general)
                if suggestion is not None:
                    issue.suggest(suggestion)

        blocking_fields = {issue.field for issue in issues if issue.is_blocking}
        issues.extend(
            suggestion
            for suggestion in vocabulary_suggestions(marketplace, general, form)
            if suggestion.field not in blocking_fields
        )
        return issues

    async def _enrich_from_oracle(
        self,
        request: PreflightRequest,
        issues_by_marketplace: dict[str, list[ValidationIssue]],
    ) -> None:
        for marketplace, issues in issues_by_marketplace.items():
            unsuggested = {
                issue.field: issue
                for issue in issues
                if issue.is_blocking and not issue.has_suggestion and not issue.field.startswith("_")
            }
            if not unsuggested:
                continue

            try:
                suggestions = await self._fill_oracle.suggest(
                    marketplace, list(unsuggested), dict(request.general_form)
                )
            except Exception:
                logger.warning("fill_oracle_failed", marketplace=marketplace, exc_info=True)
                continue

            for field_name, suggestion in suggestions.items():
                issue = unsuggested.get(field_name)
                if issue is not None and suggestion.value is not None:
                    issue.suggest(suggestion)

    async def _auto_apply(
        self,
        issues_by_marketplace: dict[str, list[ValidationIssue]],
        on_apply_patch: PatchCallback,
    ) -> None:
        for marketplace, issues in issues_by_marketplace.items():
            remaining = []
            for issue in issues:
                if not issue.has_suggestion or issue.confidence < self._threshold:
                    remaining.append(issue)
                    continue
                try:
                    outcome = on_apply_patch(issue, issue.suggested_value)
                    if inspect.isawaitable(outcome):
                        await outcome
                except RecursiveValidationError:
                    raise
                except Exception:
                    logger.exception("auto_apply_failed", marketplace=marketplace, field=issue.field)
                    remaining.append(issue)
                    continue
                logger.info(
                    "auto_applied_fix",
                    marketplace=marketplace,
                    field=issue.field,
                    confidence=issue.confidence,
                )
            issues_by_marketplace[marketplace] = remaining
