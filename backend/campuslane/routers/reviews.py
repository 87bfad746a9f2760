from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..db import get_db
from ..errors import NotFoundError, ValidationError
from ..models import Product, Review, User
from ..pagination import PageParams, page_query, paginate
from ..validators import CamelModel, ObjectId
from .auth import Principal, get_current_user, get_principal


router = APIRouter(prefix="/reviews", tags=["reviews"])


class ReviewCreate(CamelModel):
	product_id: ObjectId
	rating: int = Field(ge=1, le=5)
	comment: Optional[str] = Field(default=None, max_length=2000)


class ReviewUpdate(CamelModel):
	rating: Optional[int] = Field(default=None, ge=1, le=5)
	comment: Optional[str] = Field(default=None, max_length=2000)


@router.get("")
async def list_reviews(
	params: PageParams = Depends(),
	product_id: Optional[ObjectId] = Query(default=None, alias="productId"),
	db: Session = Depends(get_db),
):
	query = (
		db.query(Review)
		.options(joinedload(Review.user), joinedload(Review.product))
		.filter(Review.is_deleted.is_(False))
	)
	if product_id:
		query = query.filter(Review.product_id == product_id)
	rows, total = page_query(query.order_by(Review.created_at.desc()), params)
	result = paginate([r.to_dict(expand=True) for r in rows], total, params.page, params.limit)
	if product_id:
		avg = (
			db.query(func.avg(Review.rating))
			.filter(Review.product_id == product_id, Review.is_deleted.is_(False))
			.scalar()
		)
		result["averageRating"] = round(float(avg), 1) if avg is not None else None
	return {"success": True, **result}


@router.post("", status_code=201)
async def create_review(req: ReviewCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	product = db.get(Product, req.product_id)
	if product is None or product.is_deleted:
		raise NotFoundError("Product not found")
	existing = (
		db.query(Review)
		.filter(Review.product_id == product.id, Review.user_id == user.id, Review.is_deleted.is_(False))
		.first()
	)
	if existing is not None:
		raise ValidationError("You have already reviewed this product")
	review = Review(product_id=product.id, user_id=user.id, rating=req.rating, comment=req.comment)
	db.add(review)
	db.commit()
	db.refresh(review)
	return {"success": True, "data": review.to_dict()}


def _own_review(db: Session, review_id: str, user_id: Optional[str]) -> Review:
	review = db.get(Review, review_id)
	if review is None or review.is_deleted or (user_id is not None and review.user_id != user_id):
		raise NotFoundError("Review not found")
	return review


@router.patch("/{review_id}")
async def update_review(review_id: ObjectId, req: ReviewUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	review = _own_review(db, review_id, user.id)
	changes = req.model_dump(exclude_unset=True)
	if "rating" in changes and changes["rating"] is None:
		raise ValidationError("Rating must be between 1 and 5")
	for field, value in changes.items():
		setattr(review, field, value)
	db.commit()
	db.refresh(review)
	return {"success": True, "data": review.to_dict()}


@router.delete("/{review_id}")
async def delete_review(review_id: ObjectId, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
	# Admins may remove any review
	review = _own_review(db, review_id, None if principal.is_admin else principal.id)
	review.soft_delete(principal.id)
	db.commit()
	return {"success": True, "message": "Review deleted successfully"}
