"""Notification routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from app.errors import not_found
from app.routes.dependencies import get_authenticated_principal, get_notifier
from app.schemas.auth import AuthPrincipal
from app.schemas.error import NoLeakNotFoundError
from app.schemas.notification import Notification, NotificationList
from app.services.notifications import Notifier

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationList)
async def list_notifications(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> NotificationList:
    records = notifier.list_for(user_id=principal.user_id)
    return NotificationList(
        items=[Notifier.to_notification(record) for record in records],
        unread_count=notifier.unread_count(user_id=principal.user_id),
    )


@router.post(
    "/{notificationId}/read",
    response_model=Notification,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def mark_notification_read(
    notification_id: Annotated[str, Path(alias="notificationId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> Notification:
    if not notifier.mark_read(notification_id=notification_id, user_id=principal.user_id):
        raise not_found()
    return Notifier.to_notification(notifier.get(notification_id))
