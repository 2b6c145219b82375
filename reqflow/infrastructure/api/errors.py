"""Map engine errors onto HTTP responses."""

from __future__ import annotations

import logging

from fastapi import HTTPException

from reqflow.domain.errors import (
    EngineError,
    InvalidTransition,
    NotACandidate,
    NotAcceptor,
    RequestNotFound,
    RuleConfigurationError,
)

logger = logging.getLogger(__name__)


def to_http(exc: EngineError) -> HTTPException:
    if isinstance(exc, RequestNotFound):
        return HTTPException(status_code=404, detail="Request not found")
    if isinstance(exc, (NotACandidate, NotAcceptor)):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, InvalidTransition):
        logger.error("Rejected transition: %s", exc)
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, RuleConfigurationError):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
