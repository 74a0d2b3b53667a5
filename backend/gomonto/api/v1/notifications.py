"""Notification inbox endpoints for the current user."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from gomonto.api import deps
from gomonto.models.user import User
from gomonto.schemas.notification import NotificationRead
from gomonto.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRead])
async def list_notifications(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    current_user: Annotated[User, Depends(deps.get_current_active_user)],
    unread_only: bool = False,
) -> list[NotificationRead]:
    notifications = await notification_service.list_for_user(
        session, user_id=current_user.id, unread_only=unread_only
    )
    return [NotificationRead.model_validate(item) for item in notifications]


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_notification_read(
    notification_id: UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    current_user: Annotated[User, Depends(deps.get_current_active_user)],
) -> NotificationRead:
    try:
        notification = await notification_service.mark_read(
            session, notification_id=notification_id, user_id=current_user.id
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)
        ) from exc
    return NotificationRead.model_validate(notification)
