from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFoundError
from ..models import Product, User, WishlistItem
from ..validators import CamelModel, ObjectId
from .auth import get_current_user


router = APIRouter(prefix="/wishlist", tags=["wishlist"])


class WishlistRequest(CamelModel):
	product_id: ObjectId


def _wishlist(db: Session, user: User) -> dict:
	products = (
		db.query(Product)
		.join(WishlistItem, WishlistItem.product_id == Product.id)
		.filter(
			WishlistItem.user_id == user.id,
			Product.is_deleted.is_(False),
			Product.is_active.is_(True),
		)
		.order_by(WishlistItem.created_at.desc())
		.all()
	)
	return {"userId": user.id, "products": [p.summary() for p in products]}


@router.get("")
async def get_wishlist(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return {"success": True, "data": _wishlist(db, user)}


@router.post("")
async def add_to_wishlist(req: WishlistRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	product = db.get(Product, req.product_id)
	if product is None or product.is_deleted or not product.is_active:
		raise NotFoundError("Product not found or inactive")
	if db.get(WishlistItem, (user.id, product.id)) is None:
		db.add(WishlistItem(user_id=user.id, product_id=product.id))
		db.commit()
	return {"success": True, "message": "Product added to wishlist", "data": _wishlist(db, user)}


@router.delete("/{product_id}")
async def remove_from_wishlist(product_id: ObjectId, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	row = db.get(WishlistItem, (user.id, product_id))
	if row is not None:
		db.delete(row)
		db.commit()
	return {"success": True, "data": _wishlist(db, user)}
