"""Quote state machine: validates status transitions of quote versions.

    draft → sent → {approved | rejected}
    approved → in_production → ready
    any non-terminal → superseded   (only through a revision)
"""

from printshop.domain.enums import QuoteStatus, UserRole


class InvalidTransitionError(Exception):
    """Raised when a quote status transition is not allowed."""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        current_status: QuoteStatus,
        target_status: QuoteStatus,
        reason: str,
    ):
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        super().__init__(
            f"Invalid transition from {current_status.value} to {target_status.value}: {reason}"
        )


# ---------------------------------------------------------------------------
# Transition map: from_status -> {to_status: set_of_allowed_actors}
# ---------------------------------------------------------------------------

S = QuoteStatus
R = UserRole

STAFF = {R.ADMIN, R.EMPLOYEE}

TRANSITION_MAP: dict[QuoteStatus, dict[QuoteStatus, set[UserRole]]] = {
    S.DRAFT: {
        S.SENT: STAFF,
    },
    S.SENT: {
        S.APPROVED: STAFF | {R.CUSTOMER},
        S.REJECTED: STAFF | {R.CUSTOMER},
    },
    S.APPROVED: {
        S.IN_PRODUCTION: STAFF,
    },
    S.IN_PRODUCTION: {
        S.READY: STAFF,
    },
}

TERMINAL_STATES: set[QuoteStatus] = {S.REJECTED, S.READY, S.SUPERSEDED}

# States a revision may supersede
SUPERSEDABLE_STATES: set[QuoteStatus] = {S.DRAFT, S.SENT, S.APPROVED, S.IN_PRODUCTION}

# States in which the customer may rate the deal
RATEABLE_STATES: set[QuoteStatus] = {S.APPROVED, S.IN_PRODUCTION, S.READY}


class QuoteStateMachine:
    """Validates quote status transitions."""

    def validate_transition(
        self,
        current_status: QuoteStatus,
        target_status: QuoteStatus,
        actor: UserRole = UserRole.EMPLOYEE,
    ) -> bool:
        """Return True if the transition is valid. Raise InvalidTransitionError if not.

        ``superseded`` is never a valid direct target; use
        ``validate_supersede`` from the revision path.
        """
        if target_status == S.SUPERSEDED:
            raise InvalidTransitionError(
                current_status, target_status, "Quotes are superseded only by revising them",
            )

        # Admin override: admin can force any non-terminal to any other state
        if actor == R.ADMIN and current_status not in TERMINAL_STATES:
            return True

        allowed_targets = TRANSITION_MAP.get(current_status)
        if allowed_targets is None:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"No transitions allowed from {current_status.value}",
            )

        if target_status not in allowed_targets:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"Transition from {current_status.value} to {target_status.value} is not allowed",
            )

        if actor not in allowed_targets[target_status]:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"Actor {actor.value} cannot perform this transition",
            )

        return True

    def validate_supersede(self, current_status: QuoteStatus) -> bool:
        if current_status not in SUPERSEDABLE_STATES:
            raise InvalidTransitionError(
                current_status, S.SUPERSEDED, f"A {current_status.value} quote cannot be revised",
            )
        return True

    def get_allowed_transitions(
        self,
        current_status: QuoteStatus,
        actor: UserRole = UserRole.EMPLOYEE,
    ) -> list[QuoteStatus]:
        """Return the statuses ``actor`` may move a quote to (revision excluded)."""
        if current_status in TERMINAL_STATES:
            return []
        if actor == R.ADMIN:
            return [s for s in QuoteStatus if s not in (current_status, S.SUPERSEDED)]
        return [
            target
            for target, actors in TRANSITION_MAP.get(current_status, {}).items()
            if actor in actors
        ]

    def is_terminal(self, status: QuoteStatus) -> bool:
        return status in TERMINAL_STATES
