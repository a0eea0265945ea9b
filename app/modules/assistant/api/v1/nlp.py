from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.assistant.domain.history import CommandHistoryService
from app.modules.assistant.domain.interpreter import interpret, suggestions_for
from app.shared.core.auth import CurrentUser, requires_role
from app.shared.core.exceptions import ValidationError
from app.shared.core.provider import normalize_provider, require_provider
from app.shared.db.session import get_db

logger = structlog.get_logger()
router = APIRouter(tags=["Assistant"])


class ProcessRequest(BaseModel):
    # Any type: non-string input gets the same 400 as missing input.
    input: Optional[Any] = None
    provider: str = "aws"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.post("/process")
async def process_command(
    request: ProcessRequest,
    user: CurrentUser = Depends(requires_role("user")),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    if not isinstance(request.input, str) or not request.input.strip():
        raise ValidationError("Input text is required")
    provider = require_provider(request.provider)

    response = interpret(request.input, provider)
    await CommandHistoryService(db).record(
        user.id, request.input, provider, response["action"]
    )
    logger.info("assistant_command_processed", user_id=user.id, action=response["action"])
    return {
        "input": request.input,
        "provider": provider,
        "response": response,
        "user": user.id,
        "timestamp": _timestamp(),
    }


@router.get("/suggestions")
async def get_suggestions(
    provider: str = Query(default="aws"),
    category: Optional[str] = Query(default=None),
) -> dict[str, Any]:
    return {
        "provider": normalize_provider(provider) or "aws",
        "category": category or "all",
        "suggestions": suggestions_for(category),
        "timestamp": _timestamp(),
    }


@router.get("/history")
async def get_history(
    limit: int = Query(default=10, ge=1, le=100),
    user: CurrentUser = Depends(requires_role("guest")),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    history, total = await CommandHistoryService(db).recent(user.id, limit)
    return {"history": history, "total": total, "timestamp": _timestamp()}
