"""In-app notification helpers."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gomonto.models import Notification, NotificationType


async def notify(
    session: AsyncSession,
    *,
    user_id: UUID,
    type: NotificationType,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
    commit: bool = True,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        body=body,
        data=data,
        created_at=datetime.now(UTC),
    )
    session.add(notification)
    if commit:
        await session.commit()
    return notification


async def list_for_user(
    session: AsyncSession,
    *,
    user_id: UUID,
    unread_only: bool = False,
) -> list[Notification]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
    )
    if unread_only:
        stmt = stmt.where(Notification.read_at.is_(None))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def mark_read(
    session: AsyncSession,
    *,
    notification_id: UUID,
    user_id: UUID,
) -> Notification:
    notification = await session.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise ValueError("Notification not found")
    notification.read_at = datetime.now(UTC)
    await session.commit()
    await session.refresh(notification)
    return notification
