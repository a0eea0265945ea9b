from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.command_history import CommandHistory


class CommandHistoryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(self, user_id: str, raw_input: str, provider: str, action: str) -> CommandHistory:
        entry = CommandHistory(
            user_id=user_id, input=raw_input, provider=provider, action=action
        )
        self.db.add(entry)
        await self.db.commit()
        return entry

    async def recent(self, user_id: str, limit: int) -> tuple[list[dict[str, Any]], int]:
        """Newest first, plus the caller's total command count."""
        rows = await self.db.execute(
            select(CommandHistory)
            .where(CommandHistory.user_id == user_id)
            .order_by(CommandHistory.created_at.desc())
            .limit(limit)
        )
        total = await self.db.scalar(
            select(func.count(CommandHistory.id)).where(
                CommandHistory.user_id == user_id
            )
        )
        history = [
            {
                "id": str(entry.id),
                "input": entry.input,
                "provider": entry.provider,
                "action": entry.action,
                "timestamp": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in rows.scalars().all()
        ]
        return history, int(total or 0)
