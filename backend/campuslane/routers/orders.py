"""Checkout and order lifecycle.

Stock moves only inside the checkout and cancel transactions, through
conditional UPDATEs, so two buyers can never take the same unit.
"""
from __future__ import annotations

import logging
from typing import Dict, Literal, Optional, Tuple

from fastapi import APIRouter, Depends, Header, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..db import get_db
from ..errors import NotFoundError, ValidationError
from ..models import Admin, Order, OrderItem, Product, ProductVariant, User
from ..notifications import notify_order_status
from ..pagination import PageParams, page_query, paginate
from ..validators import CamelModel, ObjectId
from .auth import Principal, get_current_admin, get_current_user, get_principal
from .cart import cart_payload, get_or_create_cart, merge_line


router = APIRouter(prefix="/orders", tags=["orders"])
admin_router = APIRouter(prefix="/admin/orders", tags=["orders"])
logger = logging.getLogger("campuslane.orders")

OrderStatus = Literal["pending", "confirmed", "packed", "shipped", "out_for_delivery", "delivered", "cancelled"]

ALLOWED_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
	"pending": ("confirmed", "cancelled"),
	"confirmed": ("packed", "cancelled"),
	"packed": ("shipped", "cancelled"),
	"shipped": ("out_for_delivery", "delivered"),
	"out_for_delivery": ("delivered",),
	"delivered": (),
	"cancelled": (),
}


class ShippingAddress(CamelModel):
	name: str = Field(min_length=1)
	phone: str = Field(min_length=1)
	street: str = Field(min_length=1)
	street_optional: Optional[str] = None
	city: str = Field(min_length=1)
	state: str = Field(min_length=1)
	zipcode: str = Field(min_length=1)
	country: str = Field(min_length=1)


class CheckoutRequest(CamelModel):
	payment_type: Literal["COD", "Razorpay"]
	shipping_address: ShippingAddress
	delivery_rate: float = Field(default=0, ge=0)
	free_shipping: bool = False


class StatusRequest(CamelModel):
	status: OrderStatus


class PaymentRequest(CamelModel):
	payment_status: Literal["pending", "success", "failed"]
	payment_id: Optional[str] = Field(default=None, max_length=128)


def can_transition(current: str, target: str) -> bool:
	return current == target or target in ALLOWED_TRANSITIONS.get(current, ())


def _take_stock(db: Session, variant_id: str, quantity: int) -> bool:
	res = db.execute(
		update(ProductVariant)
		.where(ProductVariant.id == variant_id, ProductVariant.stock >= quantity)
		.values(stock=ProductVariant.stock - quantity)
	)
	return bool(res.rowcount)


def restore_stock(db: Session, order: Order) -> None:
	for item in order.items:
		db.execute(
			update(ProductVariant)
			.where(ProductVariant.id == item.variant_id)
			.values(stock=ProductVariant.stock + item.quantity)
		)


def _load(db: Session, order_id: str) -> Optional[Order]:
	return (
		db.query(Order)
		.options(selectinload(Order.items).selectinload(OrderItem.product).selectinload(Product.variants))
		.filter(Order.id == order_id)
		.first()
	)


def order_detail(order: Order) -> dict:
	data = order.to_dict()
	items = []
	for item in order.items:
		entry = item.to_dict()
		product = item.product
		current = product.find_variant(item.variant_id) if product else None
		entry["productId"] = {"_id": product.id, "name": product.name, "images": product.images or []} if product else None
		entry["currentVariant"] = current.to_dict() if current else None
		items.append(entry)
	data["items"] = items
	return data


def _existing_for_key(db: Session, user_id: str, key: str) -> Optional[Order]:
	return db.query(Order).filter(Order.user_id == user_id, Order.idempotency_key == key).first()


@router.post("/checkout")
async def checkout(
	req: CheckoutRequest,
	idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key", max_length=128),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	key = idempotency_key.strip() if idempotency_key and idempotency_key.strip() else None
	if key:
		existing = _existing_for_key(db, user.id, key)
		if existing is not None:
			logger.info("checkout replay for order %s", existing.id)
			return {"success": True, "data": order_detail(_load(db, existing.id))}

	cart = get_or_create_cart(db, user.id)
	if not cart.items:
		raise ValidationError("Cart is empty")

	order = Order(
		user_id=user.id,
		shipping_address=req.shipping_address.model_dump(by_alias=True),
		payment_type=req.payment_type,
		payment_status="pending",
		delivery_rate=req.delivery_rate,
		free_shipping=req.free_shipping,
		idempotency_key=key,
		status="pending",
	)
	total = 0.0
	for position, line in enumerate(cart.items):
		product = line.product
		variant = product.find_variant(line.variant_id) if product is not None else None
		if product is None or product.is_deleted or not product.is_active or variant is None:
			db.rollback()
			raise ValidationError("Some items in your cart are no longer available")
		if not _take_stock(db, variant.id, line.quantity):
			db.rollback()
			raise ValidationError(f"Insufficient stock for {product.name} ({variant.name})")
		total += line.price * line.quantity
		order.items.append(OrderItem(
			product_id=product.id,
			variant_id=variant.id,
			quantity=line.quantity,
			price=line.price,
			variant={"name": variant.name, "price": line.price, "images": variant.images or []},
			position=position,
		))
	if not req.free_shipping:
		total += req.delivery_rate
	order.total_amount = round(total, 2)
	db.add(order)
	cart.items = []
	try:
		db.commit()
	except IntegrityError:
		# Same key raced in from a parallel request
		db.rollback()
		existing = _existing_for_key(db, user.id, key) if key else None
		if existing is None:
			raise
		return {"success": True, "data": order_detail(_load(db, existing.id))}
	logger.info("order %s placed by %s total=%.2f", order.id, user.id, order.total_amount)
	body = {"success": True, "data": order_detail(_load(db, order.id))}
	return JSONResponse(status_code=201, content=jsonable_encoder(body))


@router.post("/reorder/{order_id}")
async def reorder(order_id: ObjectId, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	order = _load(db, order_id)
	if order is None or order.user_id != user.id:
		raise NotFoundError("Order not found")
	if not order.items:
		raise ValidationError("Order has no items to reorder")
	cart = get_or_create_cart(db, user.id)
	for item in order.items:
		merge_line(cart, item.product_id, item.variant_id, item.quantity, item.price)
	db.commit()
	db.refresh(cart)
	return {"success": True, "message": "Items from order added to your cart", "data": cart_payload(cart)}


@router.get("/mine")
async def my_orders(params: PageParams = Depends(), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	query = db.query(Order).filter(Order.user_id == user.id).order_by(Order.created_at.desc())
	rows, total = page_query(query, params)
	return {"success": True, **paginate([r.to_dict() for r in rows], total, params.page, params.limit)}


@router.get("/{order_id}")
async def get_order(order_id: ObjectId, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
	order = _load(db, order_id)
	if order is None or (not principal.is_admin and order.user_id != principal.id):
		raise NotFoundError("Order not found")
	return {"success": True, "data": order_detail(order)}


@router.patch("/{order_id}/cancel")
async def cancel_order(order_id: ObjectId, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	order = _load(db, order_id)
	if order is None or order.user_id != user.id or order.status != "pending":
		raise NotFoundError("Order not found or cannot be cancelled")
	order.status = "cancelled"
	restore_stock(db, order)
	db.commit()
	return {"success": True, "data": order_detail(_load(db, order_id)), "message": "Order cancelled successfully"}


# Admin

@admin_router.get("")
async def list_orders(
	params: PageParams = Depends(),
	status: Optional[OrderStatus] = Query(default=None),
	admin: Admin = Depends(get_current_admin),
	db: Session = Depends(get_db),
):
	query = db.query(Order)
	if status:
		query = query.filter(Order.status == status)
	rows, total = page_query(query.order_by(Order.created_at.desc()), params)
	return {"success": True, **paginate([r.to_dict() for r in rows], total, params.page, params.limit)}


@admin_router.patch("/{order_id}/status")
async def update_order_status(order_id: ObjectId, req: StatusRequest, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	order = _load(db, order_id)
	if order is None:
		raise NotFoundError("Order not found")
	if not can_transition(order.status, req.status):
		raise ValidationError(f"Cannot change order status from {order.status} to {req.status}")
	if order.status != req.status:
		if req.status == "cancelled":
			restore_stock(db, order)
		order.status = req.status
		notify_order_status(db, order.user_id, order.id, req.status)
		db.commit()
		logger.info("order %s -> %s", order_id, req.status)
	return {"success": True, "data": order_detail(_load(db, order_id))}


@admin_router.patch("/{order_id}/payment")
async def update_order_payment(order_id: ObjectId, req: PaymentRequest, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	order = _load(db, order_id)
	if order is None:
		raise NotFoundError("Order not found")
	order.payment_status = req.payment_status
	if req.payment_id is not None:
		order.payment_id = req.payment_id
	db.commit()
	return {"success": True, "data": order_detail(_load(db, order_id))}
