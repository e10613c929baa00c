from src.domain.enums.smart_listing import ModalState


# Mapping of valid transitions: from_state -> set of allowed to_states
VALID_TRANSITIONS: dict[ModalState, frozenset[ModalState]] = {
    # IDLE -> LISTING covers "list now" before any validation pass has run
    ModalState.IDLE: frozenset({ModalState.VALIDATING, ModalState.LISTING}),
    ModalState.VALIDATING: frozenset({ModalState.READY, ModalState.FIXES, ModalState.IDLE}),
    ModalState.READY: frozenset(
        {ModalState.LISTING, ModalState.FIXES, ModalState.VALIDATING, ModalState.IDLE}
    ),
    ModalState.FIXES: frozenset(
        {ModalState.LISTING, ModalState.READY, ModalState.VALIDATING, ModalState.IDLE}
    ),
    # A failed dispatch returns to the pre-dispatch READY/FIXES state, never IDLE
    ModalState.LISTING: frozenset({ModalState.IDLE, ModalState.READY, ModalState.FIXES}),
}


class InvalidModalTransitionError(Exception):
    """Raised when the smart listing flow attempts an illegal step."""

    def __init__(self, from_state: ModalState, to_state: ModalState) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition from {from_state.value} to {to_state.value}. "
            f"Allowed transitions: {sorted(s.value for s in VALID_TRANSITIONS.get(from_state, frozenset()))}"
        )


class SmartListingStateMachine:
    """
    Validates modal state transitions for the smart listing flow.

    Stateless: the controller owns the current state and asks before moving.
    """

    def can_transition(self, from_state: ModalState, to_state: ModalState) -> bool:
        return to_state in VALID_TRANSITIONS.get(from_state, frozenset())

    def validate_transition(self, from_state: ModalState, to_state: ModalState) -> None:
        """Raise InvalidModalTransitionError if the transition is not permitted."""
        if not self.can_transition(from_state, to_state):
            raise InvalidModalTransitionError(from_state, to_state)

    def get_allowed_transitions(self, from_state: ModalState) -> frozenset[ModalState]:
        return VALID_TRANSITIONS.get(from_state, frozenset())
