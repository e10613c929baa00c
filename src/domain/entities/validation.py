from dataclasses import dataclass, field
from typing import Any

from src.domain.enums.marketplace import display_name
from src.domain.enums.smart_listing import IssueSeverity, IssueType, PatchTarget


@dataclass(frozen=True)
class FieldOption:
    """A structured {id, label} choice, e.g. a category or dropdown value."""

    id: str
    label: str


@dataclass(frozen=True)
class FieldSuggestion:
    value: Any
    confidence: float
    reasoning: str = ""


@dataclass
class ValidationIssue:
    """A missing or invalid field that blocks (or could improve) one marketplace listing."""

    marketplace: str
    field: str
    patch_target: PatchTarget
    message: str = ""
    severity: IssueSeverity = IssueSeverity.BLOCKING
    issue_type: IssueType = IssueType.MISSING
    options: list[FieldOption] = field(default_factory=list)
    suggested_value: Any = None
    confidence: float = 0.0
    reasoning: str = ""

    @property
    def has_suggestion(self) -> bool:
        return self.suggested_value is not None

    @property
    def is_blocking(self) -> bool:
        return self.severity is IssueSeverity.BLOCKING

    def suggest(self, suggestion: FieldSuggestion) -> None:
        self.suggested_value = suggestion.value
        self.confidence = suggestion.confidence
        self.reasoning = suggestion.reasoning


@dataclass
class PreflightResult:
    """Outcome of one validation pass. Recomputed every pass, never persisted."""

    ready: list[str] = field(default_factory=list)
    fixes_needed: list[ValidationIssue] = field(default_factory=list)

    @property
    def has_issues(self) -> bool:
        return len(self.fixes_needed) > 0

    @property
    def blocking_count(self) -> int:
        return sum(1 for issue in self.fixes_needed if issue.is_blocking)

    @property
    def suggestion_count(self) -> int:
        return sum(1 for issue in self.fixes_needed if not issue.is_blocking)

    def issues_for(self, marketplace: str) -> list[ValidationIssue]:
        return [issue for issue in self.fixes_needed if issue.marketplace == marketplace]

    def marketplaces_needing_fixes(self) -> list[str]:
        seen: list[str] = []
        for issue in self.fixes_needed:
            if issue.marketplace not in seen:
                seen.append(issue.marketplace)
        return seen

    def summary(self) -> str:
        if not self.fixes_needed:
            return f"All {len(self.ready)} marketplace(s) ready to list!"

        parts = []
        if self.blocking_count:
            parts.append(f"{self.blocking_count} blocking issue{'s' if self.blocking_count != 1 else ''}")
        if self.suggestion_count:
            parts.append(
                f"{self.suggestion_count} smart suggestion{'s' if self.suggestion_count != 1 else ''}"
            )
        attention = ", ".join(display_name(m) for m in self.marketplaces_needing_fixes())
        return (
            f"{len(self.ready)} ready, {len(self.marketplaces_needing_fixes())} need attention "
            f"({'; '.join(parts)}): {attention}"
        )


@dataclass(frozen=True)
class FulfillmentProfile:
    pickup_enabled: bool = False
    shipping_enabled: bool = False

    @property
    def is_configured(self) -> bool:
        return self.pickup_enabled or self.shipping_enabled
