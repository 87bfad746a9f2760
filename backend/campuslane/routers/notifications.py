from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFoundError
from ..models import Admin, Notification, User
from ..notifications import create_notification
from ..pagination import PageParams, page_query, paginate
from ..validators import CamelModel, ObjectId
from .auth import get_current_admin, get_current_user


router = APIRouter(prefix="/notifications", tags=["notifications"])


class SendNotificationRequest(CamelModel):
	user_id: ObjectId
	role: Literal["student", "teacher", "parent", "admin"]
	type: str = Field(min_length=1, max_length=64)
	title: str = Field(min_length=1, max_length=256)
	body: str = Field(min_length=1)
	meta: Optional[Dict[str, Any]] = None


def _list(db: Session, owner_id: str, params: PageParams, unread: Optional[bool]) -> dict:
	query = db.query(Notification).filter(Notification.user_id == owner_id, Notification.is_deleted.is_(False))
	unread_count = query.filter(Notification.is_read.is_(False)).count()
	if unread is not None:
		query = query.filter(Notification.is_read.is_(not unread))
	rows, total = page_query(query.order_by(Notification.created_at.desc()), params)
	result = paginate([r.to_dict() for r in rows], total, params.page, params.limit)
	return {"success": True, **result, "unreadCount": unread_count}


def _owned(db: Session, owner_id: str, notification_id: str) -> Notification:
	row = db.get(Notification, notification_id)
	if row is None or row.is_deleted or row.user_id != owner_id:
		raise NotFoundError("Notification not found")
	return row


def _mark_read(db: Session, owner_id: str, notification_id: str) -> dict:
	row = _owned(db, owner_id, notification_id)
	row.is_read = True
	db.commit()
	db.refresh(row)
	return {"success": True, "data": row.to_dict()}


# Signed-in users

@router.get("/mine")
async def my_notifications(
	params: PageParams = Depends(),
	unread: Optional[bool] = Query(default=None),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	return _list(db, user.id, params, unread)


@router.patch("/mine/{notification_id}/read")
async def mark_my_notification_read(notification_id: ObjectId, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return _mark_read(db, user.id, notification_id)


# Admins

@router.get("")
async def admin_notifications(
	params: PageParams = Depends(),
	unread: Optional[bool] = Query(default=None),
	admin: Admin = Depends(get_current_admin),
	db: Session = Depends(get_db),
):
	return _list(db, admin.id, params, unread)


@router.post("", status_code=201)
async def send_notification(req: SendNotificationRequest, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	recipient = db.get(Admin, req.user_id) if req.role == "admin" else db.get(User, req.user_id)
	if recipient is None or getattr(recipient, "is_deleted", False):
		raise NotFoundError("Recipient not found")
	row = create_notification(
		db,
		user_id=req.user_id,
		role=req.role,
		type=req.type,
		title=req.title,
		body=req.body,
		meta=req.meta,
	)
	db.commit()
	db.refresh(row)
	return {"success": True, "data": row.to_dict()}


@router.patch("/{notification_id}/read")
async def mark_notification_read(notification_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	return _mark_read(db, admin.id, notification_id)


@router.delete("/{notification_id}")
async def delete_notification(notification_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = _owned(db, admin.id, notification_id)
	row.soft_delete(admin.id)
	db.commit()
	return {"success": True, "message": "Notification deleted successfully"}
