"""FastAPI dependency injection — wires adapters into use cases."""

from __future__ import annotations

import logging

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from reqflow.adapters.notifications.deferred_notifier import DeferredNotifier
from reqflow.adapters.notifications.logging_notifier import LoggingNotifier
from reqflow.adapters.notifications.webhook_notifier import WebhookNotifier
from reqflow.adapters.persistence.database import get_session
from reqflow.adapters.persistence.repositories import (
    SqlActivityRepository,
    SqlDirectoryRepository,
    SqlEscalationTicketRepository,
    SqlRequestRepository,
    SqlRuleRepository,
)
from reqflow.application.ports.notification_port import NotificationPort
from reqflow.application.services.eligibility import EligibilityResolver
from reqflow.application.use_cases.accept_request import AcceptRequestUseCase
from reqflow.application.use_cases.assign_request import AssignRequestUseCase, BatchAssignUseCase
from reqflow.application.use_cases.assignment_metrics import AssignmentMetricsUseCase
from reqflow.application.use_cases.cancel_request import CancelRequestUseCase
from reqflow.application.use_cases.complete_request import CompleteRequestUseCase
from reqflow.application.use_cases.create_request import CreateRequestUseCase
from reqflow.application.use_cases.escalate import EscalationService, ListExhaustedUseCase
from reqflow.application.use_cases.manage_rules import (
    CreateRuleUseCase,
    DeleteRuleUseCase,
    GetEligibleRulesUseCase,
    ReorderRulesUseCase,
    UpdateRuleUseCase,
)
from reqflow.application.use_cases.timeline import AddCommentUseCase, GetTimelineUseCase
from reqflow.config import settings
from reqflow.domain.policies.custom_logic import CustomLogicEvaluator
from reqflow.domain.value_objects.context import RequestContext

logger = logging.getLogger(__name__)

# Re-export session dependency
get_db_session = get_session

# Singleton adapters (stateless or with internal caching)
evaluator = CustomLogicEvaluator(
    max_length=settings.custom_logic_max_length,
    max_steps=settings.custom_logic_max_steps,
    max_depth=settings.custom_logic_max_depth,
    timeout_ms=settings.custom_logic_timeout_ms,
)

if settings.notification_webhook_url:
    notifier = WebhookNotifier()
    logger.info("Delivering notifications to %s", settings.notification_webhook_url)
else:
    notifier = LoggingNotifier()


def get_request_context(
    x_organization_id: str = Header(...),
    x_user_id: str = Header(...),
) -> RequestContext:
    """Caller identity; authentication happens upstream."""
    return RequestContext(organization_id=x_organization_id, user_id=x_user_id)


def get_outbox() -> DeferredNotifier:
    """Notifications of this request, sent by the route once it has committed."""
    return DeferredNotifier(notifier)


# ─── Builders shared with the scheduler ──────────────────────────────


def build_resolver(session: AsyncSession) -> EligibilityResolver:
    return EligibilityResolver(SqlDirectoryRepository(session), evaluator)


def build_escalation_service(
    session: AsyncSession, sink: NotificationPort = notifier
) -> EscalationService:
    return EscalationService(
        ticket_repo=SqlEscalationTicketRepository(session),
        request_repo=SqlRequestRepository(session),
        rule_repo=SqlRuleRepository(session),
        activity_repo=SqlActivityRepository(session),
        resolver=build_resolver(session),
        notifier=sink,
    )


def build_assign_request_uc(
    session: AsyncSession, sink: NotificationPort = notifier
) -> AssignRequestUseCase:
    return AssignRequestUseCase(
        rule_repo=SqlRuleRepository(session),
        request_repo=SqlRequestRepository(session),
        activity_repo=SqlActivityRepository(session),
        resolver=build_resolver(session),
        escalation=build_escalation_service(session, sink),
        notifier=sink,
        evaluator=evaluator,
    )


# ─── Request lifecycle ───────────────────────────────────────────────


def get_request_repo(session: AsyncSession = Depends(get_session)) -> SqlRequestRepository:
    return SqlRequestRepository(session)


def get_create_request_uc(
    session: AsyncSession = Depends(get_session),
    outbox: DeferredNotifier = Depends(get_outbox),
) -> CreateRequestUseCase:
    return CreateRequestUseCase(
        request_repo=SqlRequestRepository(session),
        activity_repo=SqlActivityRepository(session),
        assign_request=build_assign_request_uc(session, outbox),
    )


def get_batch_assign_uc(
    session: AsyncSession = Depends(get_session),
    outbox: DeferredNotifier = Depends(get_outbox),
) -> BatchAssignUseCase:
    return BatchAssignUseCase(
        assign_request=build_assign_request_uc(session, outbox),
        request_repo=SqlRequestRepository(session),
    )


def get_accept_request_uc(
    session: AsyncSession = Depends(get_session),
    outbox: DeferredNotifier = Depends(get_outbox),
) -> AcceptRequestUseCase:
    return AcceptRequestUseCase(
        request_repo=SqlRequestRepository(session),
        activity_repo=SqlActivityRepository(session),
        escalation=build_escalation_service(session, outbox),
        notifier=outbox,
    )


def get_complete_request_uc(
    session: AsyncSession = Depends(get_session),
    outbox: DeferredNotifier = Depends(get_outbox),
) -> CompleteRequestUseCase:
    return CompleteRequestUseCase(
        request_repo=SqlRequestRepository(session),
        activity_repo=SqlActivityRepository(session),
        escalation=build_escalation_service(session, outbox),
        notifier=outbox,
    )


def get_cancel_request_uc(
    session: AsyncSession = Depends(get_session),
    outbox: DeferredNotifier = Depends(get_outbox),
) -> CancelRequestUseCase:
    return CancelRequestUseCase(
        request_repo=SqlRequestRepository(session),
        activity_repo=SqlActivityRepository(session),
        escalation=build_escalation_service(session, outbox),
    )


def get_timeline_uc(session: AsyncSession = Depends(get_session)) -> GetTimelineUseCase:
    return GetTimelineUseCase(SqlRequestRepository(session), SqlActivityRepository(session))


def get_add_comment_uc(session: AsyncSession = Depends(get_session)) -> AddCommentUseCase:
    return AddCommentUseCase(SqlRequestRepository(session), SqlActivityRepository(session))


# ─── Rules, escalations, analytics ───────────────────────────────────


def get_rules_uc(session: AsyncSession = Depends(get_session)) -> GetEligibleRulesUseCase:
    return GetEligibleRulesUseCase(SqlRuleRepository(session))


def get_create_rule_uc(session: AsyncSession = Depends(get_session)) -> CreateRuleUseCase:
    return CreateRuleUseCase(SqlRuleRepository(session), evaluator)


def get_update_rule_uc(session: AsyncSession = Depends(get_session)) -> UpdateRuleUseCase:
    return UpdateRuleUseCase(SqlRuleRepository(session), evaluator)


def get_reorder_rules_uc(session: AsyncSession = Depends(get_session)) -> ReorderRulesUseCase:
    return ReorderRulesUseCase(SqlRuleRepository(session))


def get_delete_rule_uc(session: AsyncSession = Depends(get_session)) -> DeleteRuleUseCase:
    return DeleteRuleUseCase(SqlRuleRepository(session))


def get_escalation_service(
    session: AsyncSession = Depends(get_session),
    outbox: DeferredNotifier = Depends(get_outbox),
) -> EscalationService:
    return build_escalation_service(session, outbox)


def get_list_exhausted_uc(session: AsyncSession = Depends(get_session)) -> ListExhaustedUseCase:
    return ListExhaustedUseCase(
        SqlEscalationTicketRepository(session), SqlRequestRepository(session)
    )


def get_metrics_uc(session: AsyncSession = Depends(get_session)) -> AssignmentMetricsUseCase:
    return AssignmentMetricsUseCase(
        SqlRequestRepository(session), window_days=settings.analytics_window_days
    )
