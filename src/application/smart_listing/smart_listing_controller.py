import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from src.application.orchestrator.crosslisting_orchestrator import (
    CrosslistingOrchestrator,
    ListingOptions,
    MarketplaceNotConnectedError,
)
from src.application.orchestrator.results import MarketplaceFailure, describe_error
from src.application.preflight.marketplace_rules import RuleOptions, is_blank, is_positive_number
from src.application.preflight.preflight_validator import PreflightRequest, PreflightValidator
from src.domain.entities.credential import Credential, is_connected
from src.domain.entities.validation import FieldOption, FulfillmentProfile, PreflightResult, ValidationIssue
from src.domain.enums.smart_listing import AutoFillMode, ModalState, PatchTarget
from src.domain.state_machine.smart_listing_state_machine import SmartListingStateMachine

logger = structlog.get_logger(__name__)

SubmitHandler = Callable[[str], Any]
SuccessCallback = Callable[[list[str]], Any]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def check_listing_gate(general_form: Mapping[str, Any]) -> list[str]:
    """Cheap checks run before the full preflight pass."""
    errors = []
    if is_blank(general_form.get("title")):
        errors.append("Title is required")
    if is_blank(general_form.get("condition")):
        errors.append("Condition is required")
    if not is_positive_number(general_form.get("price")):
        errors.append("Price must be a valid number greater than 0")
    return errors


def _is_category_like(field_name: str) -> bool:
    return "category" in field_name.lower()


@dataclass
class ListingForms:
    """The general item form plus one draft form per marketplace."""

    general: dict[str, Any] = field(default_factory=dict)
    marketplaces: dict[str, dict[str, Any]] = field(default_factory=dict)

    def form_for(self, target: PatchTarget, marketplace: str) -> dict[str, Any]:
        if target is PatchTarget.GENERAL:
            return self.general
        return self.marketplaces.setdefault(marketplace, {})

    def patch(self, target: PatchTarget, marketplace: str, field_name: str, value: Any) -> None:
        form = self.form_for(target, marketplace)
        # customItemSpecifics.brand -> form["customItemSpecifics"]["brand"]
        *parents, leaf = field_name.split(".")
        for parent in parents:
            form = form.setdefault(parent, {})
        form[leaf] = value


@dataclass
class PreflightContext:
    """Everything besides the forms that a preflight pass needs."""

    marketplace_defaults: dict[str, dict[str, Any]] = field(default_factory=dict)
    fulfillment_profile: FulfillmentProfile | None = None
    general_form_baseline: dict[str, Any] | None = None
    connected_marketplaces: set[str] | None = None
    rule_options: RuleOptions = field(default_factory=RuleOptions)


@dataclass
class SmartListingSession:
    modal_open: bool = False
    modal_state: ModalState = ModalState.IDLE
    selected_marketplaces: list[str] = field(default_factory=list)
    auto_fill_mode: AutoFillMode = AutoFillMode.MANUAL
    preflight_result: PreflightResult | None = None
    is_submitting: bool = False
    gate_errors: list[str] = field(default_factory=list)
    last_error: str | None = None


@dataclass
class ListNowResult:
    listed: list[str] = field(default_factory=list)
    failures: list[MarketplaceFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.listed) and not self.failures


class SmartListingController:
    """
    Drives validate -> fix -> list for one item.

    Owns the session state only. Field rules live in the validator and dispatch lives
    behind the submit handler; the controller just sequences them.
    """

    def __init__(
        self,
        validator: PreflightValidator,
        forms: ListingForms,
        submit_handler: SubmitHandler,
        on_success: SuccessCallback | None = None,
        context: PreflightContext | None = None,
        state_machine: SmartListingStateMachine | None = None,
    ) -> None:
        self._validator = validator
        self._forms = forms
        self._submit = submit_handler
        self._on_success = on_success
        self._context = context or PreflightContext()
        self._state_machine = state_machine or SmartListingStateMachine()
        self.session = SmartListingSession()

    @property
    def forms(self) -> ListingForms:
        return self._forms

    @property
    def modal_state(self) -> ModalState:
        return self.session.modal_state

    def _transition(self, to_state: ModalState) -> None:
        from_state = self.session.modal_state
        # May raise InvalidModalTransitionError; a programming error, let it propagate
        self._state_machine.validate_transition(from_state, to_state)
        self.session.modal_state = to_state
        logger.debug("smart_listing_transition", from_state=from_state.value, to_state=to_state.value)

    def _is_busy(self) -> bool:
        return self.session.is_submitting or self.session.modal_state in (ModalState.VALIDATING, ModalState.LISTING)

    def _build_request(self) -> PreflightRequest:
        return PreflightRequest(
            marketplaces=list(self.session.selected_marketplaces),
            general_form=self._forms.general,
            marketplace_forms=self._forms.marketplaces,
            marketplace_defaults=self._context.marketplace_defaults,
            fulfillment_profile=self._context.fulfillment_profile,
            general_form_baseline=self._context.general_form_baseline,
            connected_marketplaces=self._context.connected_marketplaces,
            rule_options=self._context.rule_options,
        )

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    def open_modal(self) -> bool:
        """Open the flow if the item passes the fail-fast gate."""
        self.session.gate_errors = check_listing_gate(self._forms.general)
        if self.session.gate_errors:
            logger.info("smart_listing_gate_failed", errors=self.session.gate_errors)
            return False

        if self.session.modal_state is not ModalState.IDLE:
            self._transition(ModalState.IDLE)
        self.session.modal_open = True
        self.session.last_error = None
        return True

    def close_modal(self) -> None:
        if self.session.modal_state is not ModalState.IDLE:
            self._transition(ModalState.IDLE)
        self.session.modal_open = False
        self.session.preflight_result = None

    def toggle_marketplace(self, marketplace: str, checked: bool | None = None) -> None:
        selected = self.session.selected_marketplaces
        if checked is None:
            checked = marketplace not in selected
        if checked and marketplace not in selected:
            selected.append(marketplace)
        elif not checked and marketplace in selected:
            selected.remove(marketplace)

    def toggle_auto_fill_mode(self, mode: AutoFillMode | str | None = None) -> None:
        if mode is None:
            mode = AutoFillMode.MANUAL if self.session.auto_fill_mode is AutoFillMode.AUTO else AutoFillMode.AUTO
        self.session.auto_fill_mode = AutoFillMode(mode)

    def reset(self) -> None:
        self.session.modal_open = False
        self.session.selected_marketplaces = []
        self.session.preflight_result = None
        self.session.gate_errors = []
        self.session.last_error = None

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    async def handle_start_listing(self) -> PreflightResult | None:
        if self._is_busy():
            self.session.last_error = "Already validating or listing. Please wait for it to finish"
            logger.info("smart_listing_busy", modal_state=self.session.modal_state.value)
            return None

        self.session.last_error = None

        self.session.gate_errors = check_listing_gate(self._forms.general)
        if self.session.gate_errors:
            logger.info("smart_listing_gate_failed", errors=self.session.gate_errors)
            return None

        if not self.session.selected_marketplaces:
            self.session.last_error = "Please select at least one marketplace to list on"
            return None

        self._transition(ModalState.VALIDATING)
        try:
            result = await self._validator.validate(
                self._build_request(),
                auto_apply=self.session.auto_fill_mode is AutoFillMode.AUTO,
                on_apply_patch=self.apply_fix_only,
            )
        except Exception as exc:
            logger.exception("smart_listing_preflight_failed", marketplaces=self.session.selected_marketplaces)
            self.session.last_error = describe_error(exc)
            self._transition(ModalState.IDLE)
            return None

        self.session.preflight_result = result
        self._transition(ModalState.FIXES if result.has_issues else ModalState.READY)
        return result

    def apply_fix_only(self, issue: ValidationIssue, new_value: Any) -> None:
        """Write a fix into the right form. Never re-validates."""
        value = new_value
        if isinstance(value, Mapping) and "id" in value and "label" in value:
            value = FieldOption(id=str(value["id"]), label=str(value["label"]))

        target, marketplace, field_name = issue.patch_target, issue.marketplace, issue.field
        if isinstance(value, FieldOption):
            if _is_category_like(field_name):
                if field_name.endswith("Id"):
                    self._forms.patch(target, marketplace, field_name, value.id)
                    self._forms.patch(target, marketplace, field_name[:-2], value.label)
                else:
                    self._forms.patch(target, marketplace, field_name, value.label)
                    self._forms.patch(target, marketplace, f"{field_name}Id", value.id)
            else:
                self._forms.patch(target, marketplace, field_name, value.id or value.label)
        else:
            self._forms.patch(target, marketplace, field_name, value)

        logger.debug("fix_applied", marketplace=marketplace, field=field_name, target=target.value)

    async def handle_apply_fix(self, issue: ValidationIssue, new_value: Any) -> PreflightResult | None:
        self.apply_fix_only(issue, new_value)
        # Let the host commit the patched form before it is read back
        await asyncio.sleep(0)

        try:
            result = await self._validator.validate(
                self._build_request(),
                auto_apply=self.session.auto_fill_mode is AutoFillMode.AUTO,
                on_apply_patch=self.apply_fix_only,
            )
        except Exception as exc:
            logger.exception("smart_listing_revalidation_failed", field=issue.field)
            self.session.last_error = describe_error(exc)
            return None

        self.session.preflight_result = result
        if self.session.modal_state in (ModalState.READY, ModalState.FIXES):
            next_state = ModalState.FIXES if result.has_issues else ModalState.READY
            if next_state is not self.session.modal_state:
                self._transition(next_state)
        return result

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def handle_list_now(self, marketplaces: list[str] | None = None) -> ListNowResult:
        result = ListNowResult()
        if self._is_busy():
            self.session.last_error = "A listing is already in progress"
            logger.info("smart_listing_busy", modal_state=self.session.modal_state.value)
            return result

        if marketplaces is not None:
            targets = list(marketplaces)
        elif self.session.preflight_result is not None:
            targets = list(self.session.preflight_result.ready)
        else:
            targets = list(self.session.selected_marketplaces)

        if not targets:
            self.session.last_error = "No marketplaces ready. Please fix all blocking issues first"
            return result

        previous_state = self.session.modal_state
        retry_state = previous_state if previous_state in (ModalState.READY, ModalState.FIXES) else ModalState.FIXES

        self._transition(ModalState.LISTING)
        self.session.is_submitting = True
        self.session.last_error = None
        try:
            for marketplace in targets:
                try:
                    await _maybe_await(self._submit(marketplace))
                except Exception as exc:
                    logger.warning("smart_listing_submit_failed", marketplace=marketplace, error=describe_error(exc))
                    result.failures.append(
                        MarketplaceFailure(marketplace=marketplace, error=describe_error(exc), details=exc)
                    )
                else:
                    result.listed.append(marketplace)
        finally:
            self.session.is_submitting = False

        if result.failures:
            self._transition(retry_state)
            logger.info(
                "smart_listing_partial",
                listed=result.listed,
                failed=[failure.marketplace for failure in result.failures],
            )
            return result

        self._transition(ModalState.IDLE)
        self.reset()
        logger.info("smart_listing_completed", listed=result.listed)
        if self._on_success is not None:
            await _maybe_await(self._on_success(list(result.listed)))
        return result


def orchestrator_submit_handler(
    orchestrator: CrosslistingOrchestrator,
    item_id: str,
    credentials_map: Mapping[str, Credential],
    options: ListingOptions | None = None,
) -> Callable[[str], Awaitable[Any]]:
    """Submit handler that lists the item through the orchestrator, one marketplace per call."""

    async def submit(marketplace: str) -> Any:
        credential = credentials_map.get(marketplace)
        if not is_connected(credential):
            raise MarketplaceNotConnectedError(marketplace)
        return await orchestrator.list_on_marketplace(item_id, marketplace, credential, options)

    return submit
