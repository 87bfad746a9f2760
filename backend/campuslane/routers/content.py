from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field, model_validator
from sqlalchemy import String, cast, or_
from sqlalchemy.orm import Session, joinedload

from ..db import get_db
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..models import Admin, Chapter, Content, Progress, SchoolClass, Subject, User
from ..notifications import notify_content_submission
from ..pagination import PageParams, page_query, paginate
from ..validators import CamelModel, ObjectId, not_null
from .auth import Principal, get_optional_principal, get_principal


router = APIRouter(tags=["content"])
logger = logging.getLogger("campuslane.content")

ContentType = Literal["file", "video", "quiz", "game", "image"]
ApprovalStatus = Literal["pending", "approved", "rejected"]


class QuizQuestion(CamelModel):
	question_text: str = Field(min_length=1)
	options: List[str] = Field(min_length=4, max_length=4)
	correct_option: int = Field(ge=0, le=3)
	s3_key: Optional[str] = None


class ContentUpdate(CamelModel):
	title: Optional[str] = Field(default=None, min_length=1, max_length=256)
	description: Optional[str] = None
	class_id: Optional[ObjectId] = None
	subject_id: Optional[ObjectId] = None
	chapter_id: Optional[ObjectId] = None
	type: Optional[ContentType] = None
	s3_key: Optional[str] = None
	thumbnail_key: Optional[str] = None
	file_url: Optional[str] = None
	video_url: Optional[str] = None
	duration: Optional[float] = Field(default=None, ge=0)
	file_size: Optional[int] = Field(default=None, ge=0)
	quiz_type: Optional[Literal["googleForm", "native"]] = None
	google_form_url: Optional[str] = None
	questions: Optional[List[QuizQuestion]] = None
	feedback: Optional[str] = None
	tags: Optional[List[str]] = None

	_not_null = not_null("title", "class_id", "subject_id", "chapter_id", "type", "tags")

	def changes(self) -> Dict[str, Any]:
		data = self.model_dump(exclude_unset=True)
		if "questions" in data and data["questions"] is not None:
			data["questions"] = [q.model_dump(by_alias=True) for q in self.questions]
		return data


class ContentCreate(ContentUpdate):
	title: str = Field(min_length=1, max_length=256)
	class_id: ObjectId
	subject_id: ObjectId
	chapter_id: ObjectId
	type: ContentType
	tags: List[str] = Field(default_factory=list)

	@model_validator(mode="after")
	def _check(self):
		check_content_rules(
			self.type, self.s3_key, self.quiz_type, self.duration, self.file_size,
			self.google_form_url, self.questions,
		)
		return self


def check_content_rules(type, s3_key, quiz_type, duration, file_size, google_form_url, questions) -> None:
	if type != "quiz" and not s3_key:
		raise ValueError("s3Key is required for non-quiz content")
	if type == "quiz":
		if not quiz_type:
			raise ValueError("quizType is required for quiz content")
		if quiz_type == "googleForm" and not google_form_url:
			raise ValueError("googleFormUrl is required for Google Form quizzes")
		if quiz_type == "native" and not questions:
			raise ValueError("At least one question is required for native quizzes")
	if type == "video" and (duration is None or file_size is None):
		raise ValueError("duration and fileSize are required for video content")


def _check_hierarchy(db: Session, class_id: str, subject_id: str, chapter_id: str) -> None:
	for model, obj_id, label in ((SchoolClass, class_id, "Class"), (Subject, subject_id, "Subject"), (Chapter, chapter_id, "Chapter")):
		row = db.get(model, obj_id)
		if row is None or row.is_deleted:
			raise ValidationError(f"{label} not found")


def content_query(
	db: Session,
	params: PageParams,
	*,
	class_id: Optional[str] = None,
	subject_id: Optional[str] = None,
	chapter_id: Optional[str] = None,
	type: Optional[str] = None,
	approval_status: Optional[str] = None,
	is_admin_content: Optional[str] = None,
	uploader_id: Optional[str] = None,
	search: Optional[str] = None,
):
	query = db.query(Content).options(
		joinedload(Content.school_class),
		joinedload(Content.subject),
		joinedload(Content.chapter),
	)
	if not params.include_deleted:
		query = query.filter(Content.is_deleted.is_(False))
	if class_id:
		query = query.filter(Content.class_id == class_id)
	if subject_id:
		query = query.filter(Content.subject_id == subject_id)
	if chapter_id:
		query = query.filter(Content.chapter_id == chapter_id)
	if type:
		query = query.filter(Content.type == type)
	if approval_status:
		query = query.filter(Content.approval_status == approval_status)
	if is_admin_content is not None:
		query = query.filter(Content.is_admin_content.is_(is_admin_content == "true"))
	if uploader_id:
		query = query.filter(Content.uploader_id == uploader_id)
	term = search or params.search
	if term:
		like = f"%{term}%"
		query = query.filter(or_(
			Content.title.ilike(like),
			Content.description.ilike(like),
			cast(Content.tags, String).ilike(like),
		))
	return query


class ContentFilters:
	def __init__(
		self,
		class_id: Optional[ObjectId] = Query(default=None, alias="classId"),
		subject_id: Optional[ObjectId] = Query(default=None, alias="subjectId"),
		chapter_id: Optional[ObjectId] = Query(default=None, alias="chapterId"),
		type: Optional[ContentType] = Query(default=None),
		approval_status: Optional[ApprovalStatus] = Query(default=None, alias="approvalStatus"),
		is_admin_content: Optional[Literal["true", "false"]] = Query(default=None, alias="isAdminContent"),
	) -> None:
		self.class_id = class_id
		self.subject_id = subject_id
		self.chapter_id = chapter_id
		self.type = type
		self.approval_status = approval_status
		self.is_admin_content = is_admin_content

	def as_kwargs(self) -> Dict[str, Any]:
		return dict(vars(self))


def uploader_summary(db: Session, content: Content) -> Optional[Dict[str, Any]]:
	if content.uploader_role == "admin":
		admin = db.get(Admin, content.uploader_id)
		return {"_id": admin.id, "name": admin.name, "email": admin.email} if admin else None
	user = db.get(User, content.uploader_id)
	return user.summary() if user else None


def _get_live(db: Session, content_id: str) -> Content:
	content = db.get(Content, content_id)
	if content is None or content.is_deleted:
		raise NotFoundError("Content not found")
	return content


def _check_owner(principal: Principal, content: Content, action: str) -> None:
	if principal.is_admin:
		return
	if principal.role != "teacher":
		raise AuthorizationError("Insufficient permissions")
	if content.uploader_id != principal.id:
		raise AuthorizationError(f"You can only {action} your own content")
	if content.approval_status == "approved":
		if action == "edit":
			raise AuthorizationError("Cannot edit approved content")
		raise AuthorizationError("Can only delete pending and rejected content")


@router.get("/content")
async def list_content(
	params: PageParams = Depends(),
	filters: ContentFilters = Depends(),
	principal: Optional[Principal] = Depends(get_optional_principal),
	db: Session = Depends(get_db),
):
	kwargs = filters.as_kwargs()
	if principal is not None and principal.role in ("student", "parent"):
		kwargs["approval_status"] = "approved"
	query = content_query(db, params, **kwargs).order_by(Content.created_at.desc())
	rows, total = page_query(query, params)

	progress_map: Dict[str, Progress] = {}
	if principal is not None and principal.role == "student" and rows:
		progress_rows = (
			db.query(Progress)
			.filter(Progress.student_id == principal.id, Progress.content_id.in_([r.id for r in rows]))
			.all()
		)
		progress_map = {p.content_id: p for p in progress_rows}

	data = []
	for row in rows:
		item = row.to_dict(expand=True)
		p = progress_map.get(row.id)
		item["progress"] = p.to_dict() if p else None
		data.append(item)
	return {"success": True, **paginate(data, total, params.page, params.limit)}


@router.get("/teacher/content")
async def list_teacher_content(
	params: PageParams = Depends(),
	filters: ContentFilters = Depends(),
	uploader_id: Optional[ObjectId] = Query(default=None, alias="uploaderId"),
	principal: Principal = Depends(get_principal),
	db: Session = Depends(get_db),
):
	query = content_query(db, params, uploader_id=uploader_id, **filters.as_kwargs())
	rows, total = page_query(query.order_by(Content.updated_at.desc()), params)
	return {"success": True, **paginate([r.to_dict(expand=True) for r in rows], total, params.page, params.limit)}


@router.get("/content/{content_id}")
async def get_content(content_id: ObjectId, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
	content = _get_live(db, content_id)
	if principal.role in ("student", "parent") and content.approval_status != "approved":
		raise NotFoundError("Content not found")
	if principal.role == "teacher" and content.uploader_id != principal.id and content.approval_status != "approved":
		raise NotFoundError("Content not found")
	data = content.to_dict(expand=True)
	data["uploader"] = uploader_summary(db, content)
	return {"success": True, "data": data}


@router.post("/content", status_code=201)
async def create_content(req: ContentCreate, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
	if not principal.is_admin:
		if principal.role != "teacher":
			raise AuthorizationError("Insufficient permissions")
		if principal.user.approval_status != "approved":
			raise AuthorizationError("Teacher approval required")
	_check_hierarchy(db, req.class_id, req.subject_id, req.chapter_id)

	content = Content(
		**req.changes(),
		uploader_id=principal.id,
		uploader_role=principal.role,
		is_admin_content=principal.is_admin,
		approval_status="approved" if principal.is_admin else "pending",
	)
	db.add(content)
	db.flush()
	if principal.role == "teacher":
		notify_content_submission(db, content.id, content.title)
	db.commit()
	db.refresh(content)
	logger.info("content %s created by %s %s", content.id, principal.role, principal.id)
	return {"success": True, "data": content.to_dict()}


@router.patch("/content/{content_id}")
async def update_content(content_id: ObjectId, req: ContentUpdate, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
	content = _get_live(db, content_id)
	_check_owner(principal, content, "edit")
	changes = req.changes()
	merged = {**content.to_dict(), **req.model_dump(exclude_unset=True, by_alias=True)}
	try:
		check_content_rules(
			merged.get("type"), merged.get("s3Key"), merged.get("quizType"), merged.get("duration"),
			merged.get("fileSize"), merged.get("googleFormUrl"), merged.get("questions"),
		)
	except ValueError as e:
		raise ValidationError(str(e))
	if {"class_id", "subject_id", "chapter_id"} & changes.keys():
		_check_hierarchy(
			db,
			changes.get("class_id", content.class_id),
			changes.get("subject_id", content.subject_id),
			changes.get("chapter_id", content.chapter_id),
		)
	for field, value in changes.items():
		setattr(content, field, value)
	if principal.role == "teacher":
		# A rejected item goes back into the review queue once edited
		if content.approval_status == "rejected":
			content.approval_status = "pending"
			content.rejection_reason = None
		notify_content_submission(db, content.id, content.title)
	db.commit()
	db.refresh(content)
	return {"success": True, "data": content.to_dict()}


@router.delete("/content/{content_id}")
async def delete_content(content_id: ObjectId, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
	content = _get_live(db, content_id)
	_check_owner(principal, content, "delete")
	content.soft_delete(principal.id)
	db.commit()
	return {"success": True, "message": "Content deleted successfully"}
