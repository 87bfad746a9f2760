from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFoundError
from ..models import Admin, Category
from ..pagination import PageParams, page_query, paginate
from ..validators import CamelModel, ObjectId, not_null
from .auth import get_current_admin


router = APIRouter(prefix="/categories", tags=["categories"])


class CategoryUpdate(CamelModel):
	name: Optional[str] = Field(default=None, min_length=1, max_length=128)
	description: Optional[str] = None
	image: Optional[str] = None

	_not_null = not_null("name")


class CategoryCreate(CategoryUpdate):
	name: str = Field(min_length=1, max_length=128)


def _live(db: Session, category_id: str) -> Category:
	row = db.get(Category, category_id)
	if row is None or row.is_deleted:
		raise NotFoundError("Category not found")
	return row


@router.get("")
async def list_categories(params: PageParams = Depends(), db: Session = Depends(get_db)):
	query = db.query(Category).filter(Category.is_deleted.is_(False))
	if params.search:
		query = query.filter(Category.name.ilike(f"%{params.search}%"))
	rows, total = page_query(query.order_by(Category.name.asc()), params)
	return {"success": True, **paginate([r.to_dict() for r in rows], total, params.page, params.limit)}


@router.get("/{category_id}")
async def get_category(category_id: ObjectId, db: Session = Depends(get_db)):
	return {"success": True, "data": _live(db, category_id).to_dict()}


@router.post("", status_code=201)
async def create_category(req: CategoryCreate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = Category(**req.model_dump())
	db.add(row)
	db.commit()
	db.refresh(row)
	return {"success": True, "data": row.to_dict()}


@router.patch("/{category_id}")
async def update_category(category_id: ObjectId, req: CategoryUpdate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = _live(db, category_id)
	for field, value in req.model_dump(exclude_unset=True).items():
		setattr(row, field, value)
	db.commit()
	db.refresh(row)
	return {"success": True, "data": row.to_dict()}


@router.delete("/{category_id}")
async def delete_category(category_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = _live(db, category_id)
	row.soft_delete(admin.id)
	db.commit()
	return {"success": True, "message": "Category deleted successfully"}
