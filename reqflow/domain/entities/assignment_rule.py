"""AssignmentRule entity — routing policy for one request type."""

from dataclasses import dataclass, field

from reqflow.domain.value_objects.enums import AssignmentStrategy, RuleType

DEFAULT_TIMEOUT_HOURS = 48.0


@dataclass(frozen=True)
class EscalationLevel:
    level: int
    roles: tuple[str, ...]
    timeout_hours: float


@dataclass(frozen=True)
class EscalationPolicy:
    """Initial timeout plus the ordered fallback tiers."""

    timeout_hours: float = DEFAULT_TIMEOUT_HOURS
    levels: tuple[EscalationLevel, ...] = ()


@dataclass
class RuleConditions:
    roles: list[str] = field(default_factory=list)
    job_roles: list[str] = field(default_factory=list)
    team_ids: list[str] = field(default_factory=list)
    custom_logic: str | None = None


@dataclass
class AssignmentRule:
    id: int | None
    request_type_id: int
    rule_name: str
    priority_order: int
    rule_type: RuleType
    assignment_strategy: AssignmentStrategy = AssignmentStrategy.FIRST_AVAILABLE
    conditions: RuleConditions = field(default_factory=RuleConditions)
    escalation: EscalationPolicy = field(default_factory=EscalationPolicy)
    is_active: bool = True

    def is_custom(self) -> bool:
        return self.rule_type == RuleType.CUSTOM
