from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field, model_validator
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFoundError, ValidationError
from ..models import Cart, CartItem, Product, User
from ..validators import CamelModel, ObjectId
from .auth import get_current_user


router = APIRouter(prefix="/cart", tags=["cart"])


class AddItemRequest(CamelModel):
	product_id: ObjectId
	variant_id: ObjectId
	quantity: int = Field(default=1, ge=1)


class UpdateItemRequest(CamelModel):
	quantity: Optional[int] = Field(default=None, ge=1)
	variant_id: Optional[ObjectId] = None

	@model_validator(mode="after")
	def _check(self):
		if self.quantity is None and self.variant_id is None:
			raise ValueError("quantity or variantId is required")
		return self


def get_or_create_cart(db: Session, user_id: str) -> Cart:
	cart = db.query(Cart).filter(Cart.user_id == user_id).first()
	if cart is None:
		cart = Cart(user_id=user_id)
		db.add(cart)
		db.flush()
	return cart


def find_line(cart: Cart, product_id: str, variant_id: str) -> Optional[CartItem]:
	for item in cart.items:
		if item.product_id == product_id and item.variant_id == variant_id:
			return item
	return None


def merge_line(cart: Cart, product_id: str, variant_id: str, quantity: int, price: float) -> CartItem:
	item = find_line(cart, product_id, variant_id)
	if item is not None:
		item.quantity += quantity
		return item
	item = CartItem(product_id=product_id, variant_id=variant_id, quantity=quantity, price=price)
	cart.items.append(item)
	return item


def cart_payload(cart: Cart) -> dict:
	items = []
	for item in cart.items:
		data = item.to_dict()
		product = item.product
		if product is not None:
			summary = product.summary()
			variant = product.find_variant(item.variant_id)
			summary["selectedVariant"] = variant.to_dict() if variant else None
			data["productId"] = summary
		items.append(data)
	payload = cart.to_dict()
	payload["items"] = items
	payload["subtotal"] = round(sum(i.price * i.quantity for i in cart.items), 2)
	return payload


def _active_product(db: Session, product_id: str) -> Product:
	product = db.get(Product, product_id)
	if product is None or product.is_deleted or not product.is_active:
		raise NotFoundError("Product not found or inactive")
	return product


def _resolve_item(cart: Cart, item_id: str) -> Optional[CartItem]:
	# Line id first; older clients send the product id instead
	for item in cart.items:
		if item.id == item_id:
			return item
	for item in cart.items:
		if item.product_id == item_id:
			return item
	return None


def _refreshed(db: Session, cart: Cart) -> dict:
	db.commit()
	db.refresh(cart)
	return {"success": True, "data": cart_payload(cart)}


@router.get("")
async def get_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	cart = get_or_create_cart(db, user.id)
	return _refreshed(db, cart)


@router.post("/items")
async def add_item(req: AddItemRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	product = _active_product(db, req.product_id)
	variant = product.find_variant(req.variant_id)
	if variant is None:
		raise NotFoundError("Product variant not found")
	cart = get_or_create_cart(db, user.id)
	existing = find_line(cart, product.id, variant.id)
	wanted = req.quantity + (existing.quantity if existing else 0)
	if variant.stock < wanted:
		raise ValidationError("Insufficient stock")
	merge_line(cart, product.id, variant.id, req.quantity, variant.price)
	return _refreshed(db, cart)


@router.patch("/items/{item_id}")
async def update_item(item_id: ObjectId, req: UpdateItemRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	cart = db.query(Cart).filter(Cart.user_id == user.id).first()
	if cart is None:
		raise NotFoundError("Cart not found")
	item = _resolve_item(cart, item_id)
	if item is None:
		raise NotFoundError("Cart item not found")

	product = _active_product(db, item.product_id)
	variant_id = req.variant_id or item.variant_id
	variant = product.find_variant(variant_id)
	if variant is None:
		raise NotFoundError("Product variant not found")
	quantity = req.quantity if req.quantity is not None else item.quantity
	if variant.stock < quantity:
		raise ValidationError("Insufficient stock")

	if variant_id != item.variant_id:
		other = find_line(cart, item.product_id, variant_id)
		if other is not None:
			# Switching onto a variant already in the cart folds the two lines together
			if variant.stock < other.quantity + quantity:
				raise ValidationError("Insufficient stock")
			other.quantity += quantity
			cart.items.remove(item)
			return _refreshed(db, cart)
		item.variant_id = variant_id
		item.price = variant.price
	item.quantity = quantity
	return _refreshed(db, cart)


@router.delete("/items/{item_id}")
async def remove_item(item_id: ObjectId, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	cart = db.query(Cart).filter(Cart.user_id == user.id).first()
	if cart is None:
		raise NotFoundError("Cart not found")
	item = _resolve_item(cart, item_id)
	if item is not None:
		cart.items.remove(item)
	return _refreshed(db, cart)


@router.delete("")
async def clear_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	cart = get_or_create_cart(db, user.id)
	cart.items = []
	return _refreshed(db, cart)
