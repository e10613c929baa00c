"""
Per-marketplace field rules used by the preflight validator.

Each rule function receives the general form and the marketplace's own form (already
merged with saved defaults) and returns the issues it finds. Rules never raise for bad
input; a rule that crashes is reported by the validator as a blocking ``_error`` issue.
"""
from collections.abc import Callable, Collection, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from src.domain.entities.validation import FieldOption, FieldSuggestion, ValidationIssue
from src.domain.enums.marketplace import display_name
from src.domain.enums.smart_listing import IssueSeverity, IssueType, PatchTarget

Form = Mapping[str, Any]

TAG_LIMITS: dict[str, int] = {
    "facebook": 20,
    "etsy": 13,
    "poshmark": 3,
    "depop": 5,
    "grailed": 10,
}

RULE_SUGGESTION_CONFIDENCE = 0.9
TAG_TRUNCATION_CONFIDENCE = 0.95


def _options(*pairs: tuple[str, str]) -> list[FieldOption]:
    return [FieldOption(id=option_id, label=label) for option_id, label in pairs]


CONDITION_OPTIONS: dict[str, list[FieldOption]] = {
    "ebay": _options(
        ("New", "New"),
        ("Open Box", "Open Box"),
        ("Used", "Used"),
        ("For parts or not working", "For parts or not working"),
    ),
    "mercari": _options(
        ("New", "New"), ("Like New", "Like New"), ("Good", "Good"), ("Fair", "Fair"), ("Poor", "Poor")
    ),
    "facebook": _options(
        ("new", "New"),
        ("used_like_new", "Used - Like New"),
        ("used_good", "Used - Good"),
        ("used_fair", "Used - Fair"),
    ),
}

HANDLING_TIME_OPTIONS = _options(
    ("1", "1 business day"),
    ("2", "2 business days"),
    ("3", "3 business days"),
    ("4", "4 business days"),
    ("5", "5 business days"),
)
SHIPPING_SERVICE_OPTIONS = _options(
    ("USPSPriority", "USPS Priority Mail"),
    ("USPSFirstClass", "USPS First Class"),
    ("USPSParcelSelect", "USPS Parcel Select"),
    ("USPSMedia", "USPS Media Mail"),
    ("UPSGround", "UPS Ground"),
    ("FedExHomeDelivery", "FedEx Home Delivery"),
)
SHIPPING_COST_TYPE_OPTIONS = _options(
    ("Flat: Same cost regardless of buyer location", "Flat: Same cost regardless of buyer location"),
    ("Calculated: Cost varies based on buyer location", "Calculated: Cost varies based on buyer location"),
)
SHIPPING_METHOD_OPTIONS = _options(
    ("Flat", "Flat"), ("Calculated", "Calculated"), ("FreightFlat", "Freight Flat"), ("Free", "Free")
)
PRICING_FORMAT_OPTIONS = _options(("fixed", "Fixed Price"), ("auction", "Auction"))
DURATION_OPTIONS = _options(
    ("Good 'Til Canceled", "Good 'Til Canceled"), ("30 Days", "30 Days"), ("7 Days", "7 Days")
)
RETURN_WITHIN_OPTIONS = _options(("30 days", "30 days"), ("60 days", "60 days"))
RETURN_SHIPPING_PAYER_OPTIONS = _options(
    ("Buyer", "Buyer"), ("Free for buyer, you pay", "Free for buyer, you pay")
)
RETURN_REFUND_METHOD_OPTIONS = _options(
    ("Full Refund", "Full Refund"), ("Full Refund or Replacement", "Full Refund or Replacement")
)
WHO_MADE_OPTIONS = _options(
    ("i_did", "I did"), ("someone_else", "Someone else"), ("collective", "A member of my shop")
)
WHEN_MADE_OPTIONS = _options(
    ("made_to_order", "Made to order"),
    ("2020_2025", "2020 - 2025"),
    ("2010_2019", "2010 - 2019"),
    ("2006_2009", "2006 - 2009"),
    ("before_2006", "Before 2006"),
)
PROCESSING_TIME_OPTIONS = _options(
    ("1-2", "1-2 business days"),
    ("3-5", "3-5 business days"),
    ("5-7", "5-7 business days"),
)

# General-form condition -> marketplace condition option id
_CONDITION_MAP: dict[str, dict[str, str]] = {
    "new with tags/box": {"ebay": "New", "mercari": "New", "facebook": "new"},
    "new without tags/box": {"ebay": "New", "mercari": "Like New", "facebook": "new"},
    "new with imperfections": {"ebay": "Open Box", "mercari": "Like New", "facebook": "used_like_new"},
    "pre - owned - excellent": {"ebay": "Used", "mercari": "Like New", "facebook": "used_like_new"},
    "pre - owned - good": {"ebay": "Used", "mercari": "Good", "facebook": "used_good"},
    "pre - owned - fair": {"ebay": "Used", "mercari": "Fair", "facebook": "used_fair"},
    "new": {"ebay": "New", "mercari": "New", "facebook": "new"},
    "like new": {"ebay": "Used", "mercari": "Like New", "facebook": "used_like_new"},
    "good": {"ebay": "Used", "mercari": "Good", "facebook": "used_good"},
    "fair": {"ebay": "Used", "mercari": "Fair", "facebook": "used_fair"},
    "poor": {"ebay": "For parts or not working", "mercari": "Poor", "facebook": "used_fair"},
    "used": {"ebay": "Used", "mercari": "Good", "facebook": "used_good"},
}

_SIZED_CATEGORY_WORDS = ("clothing", "shoes", "apparel")


@dataclass(frozen=True)
class RuleOptions:
    """Catalogue knowledge the caller has about the selected categories."""

    # marketplace -> category ids that still have subcategories
    non_leaf_category_ids: Mapping[str, Collection[str]] = field(default_factory=dict)
    ebay_required_aspects: Sequence[str] = ()
    ebay_items_included_required: bool = False
    # Name and values of the category's Type/Model aspect, when it has one
    ebay_type_aspect: str | None = None
    ebay_type_values: Sequence[str] = ()


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def _first(*values: Any) -> Any:
    for value in values:
        if not is_blank(value):
            return value
    return None


def aspect_key(aspect_name: str) -> str:
    return "_".join(aspect_name.lower().split())


def split_tags(tags: Any) -> list[str]:
    if isinstance(tags, (list, tuple)):
        return [str(tag).strip() for tag in tags if str(tag).strip()]
    return [tag.strip() for tag in str(tags or "").split(",") if tag.strip()]


def tags_for_marketplace(tags: Any, marketplace: str) -> str:
    """Tags truncated to the marketplace's limit, as a comma-separated string."""
    limit = TAG_LIMITS.get(marketplace)
    parts = split_tags(tags)
    if limit is not None:
        parts = parts[:limit]
    return ", ".join(parts)


def condition_for(marketplace: str, general_condition: Any) -> str | None:
    if is_blank(general_condition):
        return None
    return _CONDITION_MAP.get(str(general_condition).strip().lower(), {}).get(marketplace)


def option_for(options: Sequence[FieldOption], option_id: str | None) -> FieldOption | None:
    for option in options:
        if option.id == option_id:
            return option
    return None


class _Collector:
    """Accumulates issues for one marketplace."""

    def __init__(self, marketplace: str) -> None:
        self.marketplace = marketplace
        self.issues: list[ValidationIssue] = []

    def add(
        self,
        field_name: str,
        message: str,
        patch_target: PatchTarget = PatchTarget.MARKETPLACE,
        issue_type: IssueType = IssueType.MISSING,
        options: Sequence[FieldOption] = (),
    ) -> None:
        self.issues.append(
            ValidationIssue(
                marketplace=self.marketplace,
                field=field_name,
                patch_target=patch_target,
                message=message,
                severity=IssueSeverity.BLOCKING,
                issue_type=issue_type,
                options=list(options),
            )
        )

    def require(
        self,
        field_name: str,
        value: Any,
        message: str,
        patch_target: PatchTarget = PatchTarget.MARKETPLACE,
        options: Sequence[FieldOption] = (),
    ) -> None:
        if is_blank(value):
            self.add(field_name, message, patch_target, options=options)

    def photos(self, general: Form, form: Form) -> None:
        self.require("photos", _first(form.get("photos"), general.get("photos")), "At least one photo is required")

    def title(self, general: Form, form: Form) -> None:
        self.require("title", _first(form.get("title"), general.get("title")), "Title is required", PatchTarget.GENERAL)

    def price(
        self,
        value: Any,
        field_name: str = "price",
        patch_target: PatchTarget = PatchTarget.GENERAL,
        label: str = "Price",
    ) -> None:
        text = "" if value is None else str(value).strip()
        if not text or text == "0":
            self.add(field_name, f"{label} is required", patch_target)
        elif not is_positive_number(text):
            self.add(
                field_name,
                "Price must be a valid number greater than 0",
                patch_target,
                issue_type=IssueType.INVALID,
            )


def is_positive_number(value: Any) -> bool:
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return False
    return number.is_finite() and number > 0


def _category_is_leaf(marketplace: str, category_id: Any, options: RuleOptions) -> bool:
    return str(category_id) not in {str(c) for c in options.non_leaf_category_ids.get(marketplace, ())}


def validate_ebay(general: Form, form: Form, options: RuleOptions) -> list[ValidationIssue]:
    issues = _Collector("ebay")
    issues.photos(general, form)

    category_id = _first(form.get("categoryId"), general.get("categoryId"))
    if is_blank(category_id) or str(category_id) == "0":
        issues.add("categoryId", "Category is required for eBay listings")
    elif not _category_is_leaf("ebay", category_id, options):
        issues.add(
            "categoryId",
            "Please select a final category (this category has subcategories)",
            issue_type=IssueType.INCOMPLETE_PATH,
        )

    issues.title(general, form)
    issues.price(
        _first(form.get("buyItNowPrice"), general.get("price")),
        field_name="buyItNowPrice",
        patch_target=PatchTarget.MARKETPLACE,
        label="Buy It Now Price",
    )
    issues.require("quantity", general.get("quantity"), "Quantity is required", PatchTarget.GENERAL)
    issues.require("condition", form.get("condition"), "Condition is required", options=CONDITION_OPTIONS["ebay"])
    issues.require("ebayBrand", _first(form.get("ebayBrand"), general.get("brand")), "Brand is required")
    issues.require("color", form.get("color"), "Color is required")

    issues.require("handlingTime", form.get("handlingTime"), "Handling Time is required", options=HANDLING_TIME_OPTIONS)
    issues.require(
        "shippingService", form.get("shippingService"), "Shipping Service is required", options=SHIPPING_SERVICE_OPTIONS
    )
    issues.require(
        "shippingCostType",
        form.get("shippingCostType"),
        "Shipping Cost Type is required",
        options=SHIPPING_COST_TYPE_OPTIONS,
    )
    issues.require(
        "shippingMethod", form.get("shippingMethod"), "Shipping Method is required", options=SHIPPING_METHOD_OPTIONS
    )
    issues.require("shippingCost", form.get("shippingCost"), "Shipping Cost is required")
    issues.require(
        "pricingFormat", form.get("pricingFormat"), "Pricing Format is required", options=PRICING_FORMAT_OPTIONS
    )
    issues.require("duration", form.get("duration"), "Duration is required", options=DURATION_OPTIONS)

    has_category = not is_blank(category_id) and str(category_id) != "0"
    if has_category and options.ebay_type_aspect is not None and options.ebay_type_values:
        issues.require(
            "itemType",
            form.get("itemType"),
            f"{options.ebay_type_aspect or 'Model (Type)'} is required for this category",
            options=[FieldOption(id=value, label=value) for value in options.ebay_type_values],
        )

    if form.get("acceptReturns"):
        issues.require(
            "returnWithin",
            form.get("returnWithin"),
            "Return Within is required when accepting returns",
            options=RETURN_WITHIN_OPTIONS,
        )
        issues.require(
            "returnShippingPayer",
            form.get("returnShippingPayer"),
            "Return Shipping Payer is required when accepting returns",
            options=RETURN_SHIPPING_PAYER_OPTIONS,
        )
        issues.require(
            "returnRefundMethod",
            form.get("returnRefundMethod"),
            "Return Refund Method is required when accepting returns",
            options=RETURN_REFUND_METHOD_OPTIONS,
        )

    if options.ebay_items_included_required:
        issues.require("itemsIncluded", form.get("itemsIncluded"), "Items Included is required for this category")

    specifics = form.get("customItemSpecifics") or {}
    for aspect in options.ebay_required_aspects:
        key = aspect_key(aspect)
        issues.require(f"customItemSpecifics.{key}", specifics.get(key), f"{aspect} is required for this category")

    return issues.issues


def validate_mercari(general: Form, form: Form, options: RuleOptions) -> list[ValidationIssue]:
    issues = _Collector("mercari")
    issues.photos(general, form)

    if is_blank(form.get("mercariCategory")) or is_blank(form.get("mercariCategoryId")):
        issues.add("mercariCategory", "Mercari category is required")
    elif not _category_is_leaf("mercari", form.get("mercariCategoryId"), options):
        issues.add(
            "mercariCategory",
            "Please select all subcategories until you reach a final category",
            issue_type=IssueType.INCOMPLETE_PATH,
        )

    issues.title(general, form)
    issues.price(_first(form.get("price"), general.get("price")))
    issues.require(
        "condition",
        _first(form.get("condition"), general.get("condition")),
        "Condition is required",
        options=CONDITION_OPTIONS["mercari"],
    )
    if is_blank(_first(form.get("brand"), general.get("brand"))) and not form.get("noBrand"):
        issues.add("brand", 'Brand is required. Type a brand name, or set "noBrand" to true to skip.')

    return issues.issues


def validate_facebook(general: Form, form: Form, options: RuleOptions) -> list[ValidationIssue]:
    issues = _Collector("facebook")
    issues.photos(general, form)

    category = _first(form.get("category"), general.get("category"))
    category_id = _first(form.get("categoryId"), general.get("categoryId"))
    if is_blank(category) or is_blank(category_id):
        issues.add("category", "Facebook category is required")

    issues.title(general, form)
    issues.price(_first(form.get("price"), general.get("price")))
    issues.require(
        "description",
        _first(form.get("description"), general.get("description")),
        "Description is required",
        PatchTarget.GENERAL,
    )
    issues.require(
        "condition",
        _first(form.get("condition"), general.get("condition")),
        "Condition is required",
        options=CONDITION_OPTIONS["facebook"],
    )

    category_text = str(category or "").lower()
    if any(word in category_text for word in _SIZED_CATEGORY_WORDS):
        issues.require("size", _first(form.get("size"), general.get("size")), "Size is required for clothing/shoes")

    return issues.issues


def validate_etsy(general: Form, form: Form, options: RuleOptions) -> list[ValidationIssue]:
    issues = _Collector("etsy")
    issues.photos(general, form)
    issues.title(general, form)
    issues.price(_first(form.get("price"), general.get("price")))
    issues.require(
        "description",
        _first(form.get("description"), general.get("description")),
        "Description is required",
        PatchTarget.GENERAL,
    )
    issues.require("whoMade", form.get("whoMade"), "Who Made It is required", options=WHO_MADE_OPTIONS)
    issues.require("whenMade", form.get("whenMade"), "When Made is required", options=WHEN_MADE_OPTIONS)
    issues.require(
        "processingTime", form.get("processingTime"), "Processing Time is required", options=PROCESSING_TIME_OPTIONS
    )
    issues.require("shippingProfile", form.get("shippingProfile"), "Shipping Profile is required")
    return issues.issues


def validate_poshmark(general: Form, form: Form, options: RuleOptions) -> list[ValidationIssue]:
    issues = _Collector("poshmark")
    issues.photos(general, form)
    issues.title(general, form)
    issues.price(_first(form.get("price"), general.get("price")))
    issues.require("brand", _first(form.get("brand"), general.get("brand")), "Brand is required")
    issues.require("size", _first(form.get("size"), general.get("size")), "Size is required")
    issues.require("category", _first(form.get("category"), general.get("category")), "Category is required")
    return issues.issues


MARKETPLACE_RULES: dict[str, Callable[[Form, Form, RuleOptions], list[ValidationIssue]]] = {
    "ebay": validate_ebay,
    "mercari": validate_mercari,
    "facebook": validate_facebook,
    "etsy": validate_etsy,
    "poshmark": validate_poshmark,
}


def tag_limit_issue(marketplace: str, general: Form, form: Form) -> ValidationIssue | None:
    limit = TAG_LIMITS.get(marketplace)
    if limit is None:
        return None
    form_tags = form.get("tags")
    tags = split_tags(form_tags if form_tags is not None else general.get("tags"))
    if len(tags) <= limit:
        return None

    issue = ValidationIssue(
        marketplace=marketplace,
        field="tags",
        patch_target=PatchTarget.MARKETPLACE,
        message=(
            f"You have {len(tags)} tags but {display_name(marketplace)} allows only {limit}. "
            f"Only the first {limit} tags will be used when listing."
        ),
        issue_type=IssueType.INVALID,
    )
    issue.suggest(
        FieldSuggestion(
            value=", ".join(tags[:limit]),
            confidence=TAG_TRUNCATION_CONFIDENCE,
            reasoning=f"Use first {limit} tags for {marketplace}",
        )
    )
    return issue


def suggest_from_general(issue: ValidationIssue, general: Form) -> FieldSuggestion | None:
    """Rule-based fill for a marketplace field whose answer is already in the general form."""
    marketplace = issue.marketplace

    if issue.field == "condition":
        mapped = condition_for(marketplace, general.get("condition"))
        option = option_for(CONDITION_OPTIONS.get(marketplace, []), mapped)
        if option is not None:
            return FieldSuggestion(
                value=option,
                confidence=0.95,
                reasoning=f"Mapped general condition '{general.get('condition')}'",
            )

    if issue.field in ("ebayBrand", "brand") and not is_blank(general.get("brand")):
        return FieldSuggestion(value=general["brand"], confidence=RULE_SUGGESTION_CONFIDENCE, reasoning="Brand from general form")

    if issue.field == "color":
        color = _first(general.get("color1"), general.get("color"))
        if color is not None:
            return FieldSuggestion(value=color, confidence=RULE_SUGGESTION_CONFIDENCE, reasoning="Primary color from general form")

    if issue.field == "size" and not is_blank(general.get("size")):
        return FieldSuggestion(value=general["size"], confidence=RULE_SUGGESTION_CONFIDENCE, reasoning="Size from general form")

    return None


def vocabulary_suggestions(marketplace: str, general: Form, form: Form) -> list[ValidationIssue]:
    """
    Non-blocking issues for fields that fall back to the general form but would be sent
    in a vocabulary the marketplace does not accept, e.g. a general condition label.
    """
    options = CONDITION_OPTIONS.get(marketplace)
    if not options or not is_blank(form.get("condition")) or is_blank(general.get("condition")):
        return []
    if str(general["condition"]) in {option.id for option in options}:
        return []

    option = option_for(options, condition_for(marketplace, general["condition"]))
    if option is None:
        return []

    issue = ValidationIssue(
        marketplace=marketplace,
        field="condition",
        patch_target=PatchTarget.MARKETPLACE,
        message=f"Map '{general['condition']}' to {display_name(marketplace)}'s '{option.label}'",
        severity=IssueSeverity.SUGGESTION,
        issue_type=IssueType.INVALID,
        options=list(options),
    )
    issue.suggest(FieldSuggestion(value=option, confidence=RULE_SUGGESTION_CONFIDENCE, reasoning="Condition mapping"))
    return [issue]
