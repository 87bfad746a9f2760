from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import ConflictError, NotFoundError
from ..models import Admin, School
from ..pagination import PageParams, page_query, paginate
from ..validators import CamelModel, ObjectId, not_null
from .auth import get_current_admin


router = APIRouter(prefix="/schools", tags=["schools"])


class SchoolUpdate(CamelModel):
	name: Optional[str] = Field(default=None, min_length=1, max_length=256)
	logo: Optional[str] = None
	address: Optional[str] = None
	city: Optional[str] = None
	state: Optional[str] = None
	country: Optional[str] = None
	pincode: Optional[str] = None

	_not_null = not_null("name")


class SchoolCreate(SchoolUpdate):
	name: str = Field(min_length=1, max_length=256)


def _live(db: Session, school_id: str) -> School:
	row = db.get(School, school_id)
	if row is None or row.is_deleted:
		raise NotFoundError("School not found")
	return row


def _save(db: Session, row: School) -> None:
	try:
		db.commit()
	except IntegrityError:
		db.rollback()
		raise ConflictError("School with this name already exists")
	db.refresh(row)


@router.get("")
async def list_schools(params: PageParams = Depends(), admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	query = db.query(School)
	if not params.include_deleted:
		query = query.filter(School.is_deleted.is_(False))
	if params.search:
		like = f"%{params.search}%"
		query = query.filter(or_(School.name.ilike(like), School.city.ilike(like)))
	rows, total = page_query(query.order_by(School.name.asc()), params)
	return {"success": True, **paginate([r.to_dict() for r in rows], total, params.page, params.limit)}


@router.get("/{school_id}")
async def get_school(school_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	return {"success": True, "data": _live(db, school_id).to_dict()}


@router.post("", status_code=201)
async def create_school(req: SchoolCreate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = School(**req.model_dump())
	db.add(row)
	_save(db, row)
	return {"success": True, "data": row.to_dict()}


@router.patch("/{school_id}")
async def update_school(school_id: ObjectId, req: SchoolUpdate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = _live(db, school_id)
	for field, value in req.model_dump(exclude_unset=True).items():
		setattr(row, field, value)
	_save(db, row)
	return {"success": True, "data": row.to_dict()}


@router.delete("/{school_id}")
async def delete_school(school_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = _live(db, school_id)
	row.soft_delete(admin.id)
	db.commit()
	return {"success": True, "message": "School deleted successfully"}
