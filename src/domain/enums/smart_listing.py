from enum import Enum


class ModalState(str, Enum):
    """Steps of the validate -> fix -> list flow."""

    IDLE = "idle"
    VALIDATING = "validating"
    READY = "ready"
    FIXES = "fixes"
    LISTING = "listing"


class AutoFillMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class PatchTarget(str, Enum):
    """Which form a validation fix is written to."""

    GENERAL = "general"
    MARKETPLACE = "marketplace"


class IssueSeverity(str, Enum):
    BLOCKING = "blocking"
    SUGGESTION = "suggestion"


class IssueType(str, Enum):
    MISSING = "missing"
    INVALID = "invalid"
    INCOMPLETE_PATH = "incomplete_path"
