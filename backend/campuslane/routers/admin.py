from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..models import Admin, Content, User
from ..notifications import notify_content_review, notify_teacher_review
from ..pagination import PageParams, page_query, paginate
from ..ratelimit import upload_limiter
from ..storage import ALLOWED_CONTENT_TYPES, MAX_UPLOAD_BYTES, build_upload_key, presign_upload
from ..validators import CamelModel, ObjectId, not_null
from .auth import Principal, get_current_admin, get_principal
from .content import ApprovalStatus, ContentFilters, content_query


router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger("campuslane.admin")


class UserUpdate(CamelModel):
	name: Optional[str] = Field(default=None, min_length=1, max_length=128)
	phone: Optional[str] = None
	city: Optional[str] = None
	state: Optional[str] = None
	country: Optional[str] = None
	pincode: Optional[str] = None

	_not_null = not_null("name")


class StudentUpdate(UserUpdate):
	age: Optional[int] = Field(default=None, ge=5, le=18)
	class_level: Optional[ObjectId] = None
	class_other: Optional[str] = None


class ReasonRequest(CamelModel):
	reason: Optional[str] = Field(default=None, max_length=1000)


class BulkReviewRequest(CamelModel):
	ids: List[ObjectId] = Field(min_length=1, max_length=100)
	reason: Optional[str] = Field(default=None, max_length=1000)


class PresignRequest(CamelModel):
	file_name: str = Field(min_length=1, max_length=255)
	content_type: str = Field(min_length=1)
	file_size: int = Field(gt=0, le=MAX_UPLOAD_BYTES)


def _users_query(db: Session, role: str, params: PageParams):
	query = db.query(User).filter(User.role == role)
	if not params.include_deleted:
		query = query.filter(User.is_deleted.is_(False))
	if params.search:
		like = f"%{params.search}%"
		query = query.filter(or_(User.name.ilike(like), User.email.ilike(like)))
	return query


def _get_user(db: Session, user_id: str, role: str, label: str) -> User:
	user = db.get(User, user_id)
	if user is None or user.is_deleted or user.role != role:
		raise NotFoundError(f"{label} not found")
	return user


def _apply(user: User, req: CamelModel) -> None:
	changes = req.model_dump(exclude_unset=True)
	if "class_level" in changes:
		changes["class_level_id"] = changes.pop("class_level")
	for field, value in changes.items():
		setattr(user, field, value)


@router.get("/me")
async def admin_me(admin: Admin = Depends(get_current_admin)):
	return {"success": True, "data": admin.to_dict()}


# Teachers

@router.get("/teachers")
async def list_teachers(
	params: PageParams = Depends(),
	status: Optional[ApprovalStatus] = Query(default=None),
	admin: Admin = Depends(get_current_admin),
	db: Session = Depends(get_db),
):
	query = _users_query(db, "teacher", params)
	if status:
		query = query.filter(User.approval_status == status)
	rows, total = page_query(query.order_by(User.created_at.desc()), params)
	return {"success": True, **paginate([r.to_dict() for r in rows], total, params.page, params.limit)}


@router.get("/teachers/{teacher_id}")
async def get_teacher(teacher_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	return {"success": True, "data": _get_user(db, teacher_id, "teacher", "Teacher").to_dict()}


@router.patch("/teachers/{teacher_id}")
async def update_teacher(teacher_id: ObjectId, req: UserUpdate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	teacher = _get_user(db, teacher_id, "teacher", "Teacher")
	_apply(teacher, req)
	db.commit()
	db.refresh(teacher)
	return {"success": True, "data": teacher.to_dict()}


@router.delete("/teachers/{teacher_id}")
async def delete_teacher(teacher_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	teacher = _get_user(db, teacher_id, "teacher", "Teacher")
	teacher.soft_delete(admin.id)
	db.commit()
	return {"success": True, "message": "Teacher deleted successfully"}


def _review_teacher(db: Session, teacher_id: str, approved: bool, reason: Optional[str]) -> User:
	teacher = _get_user(db, teacher_id, "teacher", "Teacher")
	teacher.approval_status = "approved" if approved else "rejected"
	notify_teacher_review(db, teacher, approved, reason)
	db.commit()
	db.refresh(teacher)
	logger.info("teacher %s %s", teacher.id, teacher.approval_status)
	return teacher


@router.patch("/teachers/{teacher_id}/approve")
async def approve_teacher(teacher_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	teacher = _review_teacher(db, teacher_id, True, None)
	return {"success": True, "data": teacher.to_dict(), "message": "Teacher approved successfully"}


@router.patch("/teachers/{teacher_id}/reject")
async def reject_teacher(teacher_id: ObjectId, req: Optional[ReasonRequest] = None, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	teacher = _review_teacher(db, teacher_id, False, req.reason if req else None)
	return {"success": True, "data": teacher.to_dict(), "message": "Teacher rejected successfully"}


# Students

@router.get("/students")
async def list_students(params: PageParams = Depends(), admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	query = _users_query(db, "student", params)
	rows, total = page_query(query.order_by(User.created_at.desc()), params)
	return {"success": True, **paginate([r.to_dict() for r in rows], total, params.page, params.limit)}


def _student_for(db: Session, principal: Principal, student_id: str) -> User:
	if not principal.is_admin and principal.id != student_id:
		raise AuthorizationError("You can only access your own profile")
	return _get_user(db, student_id, "student", "Student")


@router.get("/students/{student_id}")
async def get_student(student_id: ObjectId, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
	return {"success": True, "data": _student_for(db, principal, student_id).to_dict()}


@router.patch("/students/{student_id}")
async def update_student(student_id: ObjectId, req: StudentUpdate, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
	student = _student_for(db, principal, student_id)
	_apply(student, req)
	db.commit()
	db.refresh(student)
	return {"success": True, "data": student.to_dict()}


@router.delete("/students/{student_id}")
async def delete_student(student_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	student = _get_user(db, student_id, "student", "Student")
	student.soft_delete(admin.id)
	db.commit()
	return {"success": True, "message": "Student deleted successfully"}


# Content approval

@router.get("/content")
async def list_content_for_approval(
	params: PageParams = Depends(),
	filters: ContentFilters = Depends(),
	q: Optional[str] = Query(default=None),
	admin: Admin = Depends(get_current_admin),
	db: Session = Depends(get_db),
):
	query = content_query(db, params, search=q, **filters.as_kwargs())
	rows, total = page_query(query.order_by(Content.created_at.desc()), params)
	return {"success": True, **paginate([r.to_dict(expand=True) for r in rows], total, params.page, params.limit)}


def _review_content(db: Session, content: Content, approved: bool, reason: Optional[str]) -> None:
	content.approval_status = "approved" if approved else "rejected"
	content.rejection_reason = None if approved else reason
	notify_content_review(db, content, approved, reason)


def _live_content(db: Session, content_id: str) -> Content:
	content = db.get(Content, content_id)
	if content is None or content.is_deleted:
		raise NotFoundError("Content not found")
	return content


@router.patch("/content/{content_id}/approve")
async def approve_content(content_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	content = _live_content(db, content_id)
	_review_content(db, content, True, None)
	db.commit()
	db.refresh(content)
	return {"success": True, "data": content.to_dict(), "message": "Content approved successfully"}


@router.patch("/content/{content_id}/reject")
async def reject_content(content_id: ObjectId, req: Optional[ReasonRequest] = None, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	content = _live_content(db, content_id)
	_review_content(db, content, False, req.reason if req else None)
	db.commit()
	db.refresh(content)
	return {"success": True, "data": content.to_dict(), "message": "Content rejected successfully"}


def _bulk_review(db: Session, req: BulkReviewRequest, approved: bool) -> dict:
	ids = list(dict.fromkeys(req.ids))
	rows = db.query(Content).filter(Content.id.in_(ids), Content.is_deleted.is_(False)).all()
	for content in rows:
		_review_content(db, content, approved, None if approved else req.reason)
	db.commit()
	found = {r.id for r in rows}
	return {
		"updated": len(rows),
		"notFound": [i for i in ids if i not in found],
	}


@router.post("/content/bulk-approve")
async def bulk_approve_content(req: BulkReviewRequest, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	return {"success": True, "data": _bulk_review(db, req, True), "message": "Content approved successfully"}


@router.post("/content/bulk-reject")
async def bulk_reject_content(req: BulkReviewRequest, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	return {"success": True, "data": _bulk_review(db, req, False), "message": "Content rejected successfully"}


# Uploads

@router.post("/presign", dependencies=[Depends(upload_limiter)])
async def presign(req: PresignRequest, principal: Principal = Depends(get_principal)):
	if req.content_type not in ALLOWED_CONTENT_TYPES:
		raise ValidationError("Unsupported file type")
	key = build_upload_key(req.file_name)
	return {"success": True, "data": presign_upload(key, req.content_type)}
