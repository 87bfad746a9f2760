from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFoundError
from ..models import BookmarkItem, Content, User
from ..validators import CamelModel, ObjectId
from .auth import get_current_user


router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


class BookmarkRequest(CamelModel):
	content_id: ObjectId


def _bookmarks(db: Session, user: User) -> dict:
	rows = (
		db.query(Content)
		.join(BookmarkItem, BookmarkItem.content_id == Content.id)
		.filter(BookmarkItem.user_id == user.id, Content.is_deleted.is_(False))
		.order_by(BookmarkItem.created_at.desc())
		.all()
	)
	return {"userId": user.id, "contents": [c.to_dict(expand=True) for c in rows]}


@router.get("")
async def get_bookmarks(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return {"success": True, "data": _bookmarks(db, user)}


@router.post("")
async def add_bookmark(req: BookmarkRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	content = db.get(Content, req.content_id)
	if content is None or content.is_deleted:
		raise NotFoundError("Content not found or inactive")
	if db.get(BookmarkItem, (user.id, content.id)) is None:
		db.add(BookmarkItem(user_id=user.id, content_id=content.id))
		db.commit()
	return {"success": True, "message": "Content added to Bookmark", "data": _bookmarks(db, user)}


@router.delete("/{content_id}")
async def remove_bookmark(content_id: ObjectId, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	row = db.get(BookmarkItem, (user.id, content_id))
	if row is not None:
		db.delete(row)
		db.commit()
	return {"success": True, "data": _bookmarks(db, user)}
