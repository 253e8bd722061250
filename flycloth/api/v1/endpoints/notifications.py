from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_user
from flycloth.db.session import get_db
from flycloth.models.user import User
from flycloth.schemas.notification import MarkReadResult, Notification, UnreadCount
from flycloth.services.notification_service import notification_service

router = APIRouter()


@router.get("/", response_model=List[Notification], summary="获取通知列表")
async def list_notifications(
        limit: int = Query(20, ge=1, le=50),
        unread_only: bool = False,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    """
    普通用户只能看到自己的通知，管理员还能看到面向全体管理员的通知
    """
    return await notification_service.list_notifications(db, current_user, limit=limit, unread_only=unread_only)


@router.get("/unread-count", response_model=UnreadCount, summary="获取未读通知数")
async def get_unread_count(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    return {"count": await notification_service.get_unread_count(db, current_user)}


@router.post("/{notification_id}/read", response_model=MarkReadResult, summary="标记通知已读")
async def mark_as_read(
        notification_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    if not await notification_service.mark_as_read(db, current_user, notification_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="通知不存在")
    return {"success": True, "updated": 1}


@router.post("/read-all", response_model=MarkReadResult, summary="全部标记已读")
async def mark_all_as_read(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    updated = await notification_service.mark_all_as_read(db, current_user)
    return {"success": True, "updated": updated}
