"""Domain errors raised by the assignment and escalation engine."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all engine errors."""


class RequestNotFound(EngineError):
    def __init__(self, request_id: int):
        super().__init__(f"Request {request_id} not found")
        self.request_id = request_id


class NoMatchingRule(EngineError):
    """No active rule matched the request; it stays unassigned."""

    def __init__(self, request_type_id: int):
        super().__init__(f"No assignment rule matched request type {request_type_id}")
        self.request_type_id = request_type_id


class NoEligibleUsers(EngineError):
    """The matched rule resolved to an empty candidate set."""

    def __init__(self, rule_id: int | None):
        super().__init__(f"Rule {rule_id} resolved to no eligible users")
        self.rule_id = rule_id


class AlreadyAccepted(EngineError):
    """Lost the acceptance race. Informational, never retried."""

    def __init__(self, request_id: int, by: str):
        super().__init__(f"Request {request_id} already accepted by {by}")
        self.request_id = request_id
        self.by = by


class InvalidTransition(EngineError):
    def __init__(self, status: str, action: str):
        super().__init__(f"Cannot {action} a request in status '{status}'")
        self.status = status
        self.action = action


class NotACandidate(EngineError):
    def __init__(self, request_id: int, user_id: str):
        super().__init__(f"User {user_id} is not a candidate for request {request_id}")
        self.request_id = request_id
        self.user_id = user_id


class NotAcceptor(EngineError):
    def __init__(self, request_id: int, user_id: str):
        super().__init__(f"User {user_id} did not accept request {request_id}")
        self.request_id = request_id
        self.user_id = user_id


class EscalationExhausted(EngineError):
    """No escalation levels remain; a human has to step in."""

    def __init__(self, level: int):
        super().__init__(f"No escalation level after level {level}")
        self.level = level


class SchedulerClaimConflict(EngineError):
    """Another scheduler instance already processed this ticket."""

    def __init__(self, request_id: int):
        super().__init__(f"Escalation ticket for request {request_id} claimed elsewhere")
        self.request_id = request_id


class RuleConfigurationError(EngineError):
    pass


class CustomLogicError(RuleConfigurationError):
    """Custom predicate could not be parsed or blew its budget."""
