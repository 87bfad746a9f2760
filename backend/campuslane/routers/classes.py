from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Admin, Chapter, SchoolClass, Subject
from ..pagination import PageParams, page_query, paginate
from ..validators import CamelModel, ObjectId, not_null
from .auth import get_current_admin


router = APIRouter(tags=["classes"])


class ClassCreate(CamelModel):
	name: str = Field(min_length=1, max_length=128)
	description: Optional[str] = None
	thumbnail_key: Optional[str] = None


class ClassUpdate(CamelModel):
	name: Optional[str] = Field(default=None, min_length=1, max_length=128)
	description: Optional[str] = None
	thumbnail_key: Optional[str] = None

	_not_null = not_null("name")


class SubjectCreate(ClassCreate):
	class_id: ObjectId


class SubjectUpdate(ClassUpdate):
	class_id: Optional[ObjectId] = None

	_not_null = not_null("name", "class_id")


class ChapterCreate(ClassCreate):
	subject_id: ObjectId
	order: int = Field(default=0, ge=0)


class ChapterUpdate(ClassUpdate):
	subject_id: Optional[ObjectId] = None
	order: Optional[int] = Field(default=None, ge=0)

	_not_null = not_null("name", "subject_id", "order")


def _live(db: Session, model, obj_id: str, label: str):
	row = db.get(model, obj_id)
	if row is None or row.is_deleted:
		raise NotFoundError(f"{label} not found")
	return row


def _require_parent(db: Session, model, obj_id: Optional[str], label: str) -> None:
	if obj_id is None:
		return
	row = db.get(model, obj_id)
	if row is None or row.is_deleted:
		raise ValidationError(f"{label} not found")


def _save(db: Session, row, message: str) -> None:
	try:
		db.commit()
	except IntegrityError:
		db.rollback()
		raise ConflictError(message)
	db.refresh(row)


def _apply(row, req: CamelModel) -> None:
	for field, value in req.model_dump(exclude_unset=True).items():
		setattr(row, field, value)


# Classes

@router.get("/classes")
async def list_classes(params: PageParams = Depends(), db: Session = Depends(get_db)):
	query = db.query(SchoolClass).filter(SchoolClass.is_deleted.is_(False))
	if params.search:
		query = query.filter(SchoolClass.name.ilike(f"%{params.search}%"))
	rows, total = page_query(query.order_by(SchoolClass.name.asc()), params)
	return {"success": True, **paginate([r.to_dict() for r in rows], total, params.page, params.limit)}


@router.get("/classes/{class_id}")
async def get_class(class_id: ObjectId, db: Session = Depends(get_db)):
	return {"success": True, "data": _live(db, SchoolClass, class_id, "Class").to_dict()}


@router.post("/classes", status_code=201)
async def create_class(req: ClassCreate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = SchoolClass(**req.model_dump())
	db.add(row)
	_save(db, row, "Class with this name already exists")
	return {"success": True, "data": row.to_dict()}


@router.patch("/classes/{class_id}")
async def update_class(class_id: ObjectId, req: ClassUpdate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = _live(db, SchoolClass, class_id, "Class")
	_apply(row, req)
	_save(db, row, "Class with this name already exists")
	return {"success": True, "data": row.to_dict()}


@router.delete("/classes/{class_id}")
async def delete_class(class_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = _live(db, SchoolClass, class_id, "Class")
	row.soft_delete(admin.id)
	db.commit()
	return {"success": True, "message": "Class deleted successfully"}


# Subjects

@router.get("/subjects")
async def list_subjects(class_id: Optional[ObjectId] = Query(default=None, alias="classId"), db: Session = Depends(get_db)):
	query = db.query(Subject).filter(Subject.is_deleted.is_(False))
	if class_id:
		query = query.filter(Subject.class_id == class_id)
	rows = query.order_by(Subject.created_at.asc()).all()
	return {"success": True, "data": [r.to_dict() for r in rows]}


@router.get("/subjects/{subject_id}")
async def get_subject(subject_id: ObjectId, db: Session = Depends(get_db)):
	return {"success": True, "data": _live(db, Subject, subject_id, "Subject").to_dict()}


@router.post("/subjects", status_code=201)
async def create_subject(req: SubjectCreate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	_require_parent(db, SchoolClass, req.class_id, "Class")
	row = Subject(**req.model_dump())
	db.add(row)
	_save(db, row, "Subject already exists")
	return {"success": True, "data": row.to_dict()}


@router.patch("/subjects/{subject_id}")
async def update_subject(subject_id: ObjectId, req: SubjectUpdate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = _live(db, Subject, subject_id, "Subject")
	_require_parent(db, SchoolClass, req.class_id, "Class")
	_apply(row, req)
	_save(db, row, "Subject already exists")
	return {"success": True, "data": row.to_dict()}


@router.delete("/subjects/{subject_id}")
async def delete_subject(subject_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = _live(db, Subject, subject_id, "Subject")
	row.soft_delete(admin.id)
	db.commit()
	return {"success": True, "message": "Subject deleted successfully"}


# Chapters

@router.get("/chapters")
async def list_chapters(subject_id: Optional[ObjectId] = Query(default=None, alias="subjectId"), db: Session = Depends(get_db)):
	query = db.query(Chapter).filter(Chapter.is_deleted.is_(False))
	if subject_id:
		query = query.filter(Chapter.subject_id == subject_id)
	rows = query.order_by(Chapter.order.asc(), Chapter.created_at.asc()).all()
	return {"success": True, "data": [r.to_dict() for r in rows]}


@router.get("/chapters/{chapter_id}")
async def get_chapter(chapter_id: ObjectId, db: Session = Depends(get_db)):
	return {"success": True, "data": _live(db, Chapter, chapter_id, "Chapter").to_dict()}


@router.post("/chapters", status_code=201)
async def create_chapter(req: ChapterCreate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	_require_parent(db, Subject, req.subject_id, "Subject")
	row = Chapter(**req.model_dump())
	db.add(row)
	_save(db, row, "Chapter already exists")
	return {"success": True, "data": row.to_dict()}


@router.patch("/chapters/{chapter_id}")
async def update_chapter(chapter_id: ObjectId, req: ChapterUpdate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = _live(db, Chapter, chapter_id, "Chapter")
	_require_parent(db, Subject, req.subject_id, "Subject")
	_apply(row, req)
	_save(db, row, "Chapter already exists")
	return {"success": True, "data": row.to_dict()}


@router.delete("/chapters/{chapter_id}")
async def delete_chapter(chapter_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = _live(db, Chapter, chapter_id, "Chapter")
	row.soft_delete(admin.id)
	db.commit()
	return {"success": True, "message": "Chapter deleted successfully"}
