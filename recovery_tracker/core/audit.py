"""
Action log for administrative ledger operations (bulk clear, imports).
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.core.models import ActivityLog


async def log_action(
    db: AsyncSession,
    action: str,
    table_name: str,
    *,
    user_id: Optional[UUID] = None,
    record_id: Optional[UUID] = None,
    new_values: Optional[Dict[str, Any]] = None,
) -> None:
    """Append one action log entry. Caller must commit."""
    entry = ActivityLog(
        user_id=user_id,
        action=action,
        table_name=table_name,
        record_id=record_id,
        new_values=new_values,
        created_at=datetime.utcnow(),
    )
    db.add(entry)
