from __future__ import annotations

import math
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from ..db import get_db
from ..errors import NotFoundError, ValidationError
from ..models import Admin, Category, Product, ProductVariant, School, SchoolClass
from ..validators import CamelModel, ObjectId, not_null
from .auth import get_current_admin


router = APIRouter(prefix="/products", tags=["products"])

Gender = Literal["Boys", "Girls", "Unisex"]
ProductSort = Literal["price_asc", "price_desc", "newest", "relevance"]


class VariantUpdate(CamelModel):
	name: Optional[str] = Field(default=None, min_length=1, max_length=128)
	price: Optional[float] = Field(default=None, ge=0)
	cutoff_price: Optional[float] = Field(default=None, ge=0)
	stock: Optional[int] = Field(default=None, ge=0)
	images: Optional[List[str]] = None

	_not_null = not_null("name", "price", "stock", "images")


class VariantIn(VariantUpdate):
	# Present when an existing variant is being kept or edited
	id: Optional[ObjectId] = Field(default=None, alias="_id")
	name: str = Field(min_length=1, max_length=128)
	price: float = Field(ge=0)
	stock: int = Field(default=0, ge=0)
	images: List[str] = Field(default_factory=list)


class ProductUpdate(CamelModel):
	name: Optional[str] = Field(default=None, min_length=1, max_length=256)
	description: Optional[str] = None
	category: Optional[ObjectId] = None
	images: Optional[List[str]] = None
	variants: Optional[List[VariantIn]] = Field(default=None, min_length=1)
	school: Optional[ObjectId] = None
	gender: Optional[Gender] = None
	class_level: Optional[ObjectId] = None
	subject: Optional[str] = None
	brand: Optional[str] = None
	type: Optional[str] = None
	is_active: Optional[bool] = None

	_not_null = not_null("name", "category", "images", "variants", "is_active")


class ProductCreate(ProductUpdate):
	name: str = Field(min_length=1, max_length=256)
	category: ObjectId
	images: List[str] = Field(default_factory=list)
	variants: List[VariantIn] = Field(min_length=1)
	is_active: bool = True


_REFS = {
	"category": ("category_id", Category, "Category"),
	"school": ("school_id", School, "School"),
	"class_level": ("class_level_id", SchoolClass, "Class"),
}


def _apply_fields(db: Session, product: Product, changes: dict) -> None:
	for field, value in changes.items():
		if field == "variants":
			continue
		if field in _REFS:
			column, model, label = _REFS[field]
			if value is not None:
				ref = db.get(model, value)
				if ref is None or ref.is_deleted:
					raise ValidationError(f"{label} not found")
			setattr(product, column, value)
			continue
		setattr(product, field, value)


def _variant_values(v: VariantIn) -> dict:
	return v.model_dump(exclude={"id"})


def _sync_variants(product: Product, variants: List[VariantIn]) -> None:
	"""Replace the variant list; entries with an _id update that variant in place."""
	existing = {v.id: v for v in product.variants}
	kept = []
	for position, item in enumerate(variants):
		if item.id is not None:
			row = existing.get(item.id)
			if row is None:
				raise ValidationError("Variant not found")
			for field, value in _variant_values(item).items():
				setattr(row, field, value)
		else:
			row = ProductVariant(**_variant_values(item))
		row.position = position
		kept.append(row)
	product.variants = kept


def _live(db: Session, product_id: str) -> Product:
	product = (
		db.query(Product)
		.options(
			selectinload(Product.variants),
			joinedload(Product.category),
			joinedload(Product.school),
			joinedload(Product.class_level),
		)
		.filter(Product.id == product_id, Product.is_deleted.is_(False))
		.first()
	)
	if product is None:
		raise NotFoundError("Product not found")
	return product


def _relevance(product: Product, term: str) -> int:
	term = term.lower()
	if term in (product.name or "").lower():
		return 2
	if term in (product.brand or "").lower():
		return 1
	return 0


@router.get("")
async def list_products(
	category: Optional[ObjectId] = Query(default=None),
	school: Optional[ObjectId] = Query(default=None),
	brand: Optional[str] = Query(default=None),
	gender: Optional[str] = Query(default=None),
	subject: Optional[str] = Query(default=None),
	type: Optional[str] = Query(default=None),
	search: Optional[str] = Query(default=None),
	is_active: Optional[str] = Query(default=None, alias="isActive"),
	min_price: Optional[float] = Query(default=None, alias="minPrice", ge=0),
	max_price: Optional[float] = Query(default=None, alias="maxPrice", ge=0),
	in_stock: Optional[str] = Query(default=None, alias="inStock"),
	sort: ProductSort = Query(default="relevance"),
	page: int = Query(default=1),
	limit: int = Query(default=12),
	db: Session = Depends(get_db),
):
	page = max(page, 1)
	limit = min(max(limit, 1), 100)
	query = (
		db.query(Product)
		.options(selectinload(Product.variants), joinedload(Product.category), joinedload(Product.school))
		.filter(Product.is_deleted.is_(False))
	)
	if category:
		query = query.filter(Product.category_id == category)
	if school:
		query = query.filter(Product.school_id == school)
	if brand:
		query = query.filter(Product.brand == brand)
	if gender:
		query = query.filter(Product.gender == gender)
	if subject:
		query = query.filter(Product.subject == subject)
	if type:
		query = query.filter(Product.type == type)
	if is_active is not None:
		query = query.filter(Product.is_active.is_(is_active == "true"))
	term = search.strip() if search else None
	if term:
		like = f"%{term}%"
		query = query.filter(or_(Product.name.ilike(like), Product.description.ilike(like), Product.brand.ilike(like)))

	variant_filtered = min_price is not None or max_price is not None or in_stock == "true"
	matches = []
	for product in query.all():
		variants = list(product.variants)
		if min_price is not None:
			variants = [v for v in variants if v.price >= min_price]
		if max_price is not None:
			variants = [v for v in variants if v.price <= max_price]
		if in_stock == "true":
			variants = [v for v in variants if v.stock > 0]
		if variant_filtered and not variants:
			continue
		prices = [v.price for v in variants]
		matches.append((product, variants, min(prices) if prices else None, sum(v.stock for v in variants)))

	newest = lambda m: m[0].created_at or datetime.min
	matches.sort(key=newest, reverse=True)
	if sort == "price_asc":
		matches.sort(key=lambda m: math.inf if m[2] is None else m[2])
	elif sort == "price_desc":
		matches.sort(key=lambda m: -math.inf if m[2] is None else m[2], reverse=True)
	elif sort == "relevance" and term:
		matches.sort(key=lambda m: _relevance(m[0], term), reverse=True)

	total = len(matches)
	docs = []
	for product, variants, min_price_value, total_stock in matches[(page - 1) * limit:page * limit]:
		doc = product.to_dict()
		doc["variants"] = [v.to_dict() for v in variants]
		doc["category"] = product.category.to_dict() if product.category else None
		doc["school"] = product.school.to_dict() if product.school else None
		doc["minPrice"] = min_price_value
		doc["totalStock"] = total_stock
		docs.append(doc)

	return {
		"success": True,
		"docs": docs,
		"total": total,
		"page": page,
		"limit": limit,
		"totalPages": max(1, math.ceil(total / limit)),
	}


@router.get("/{product_id}")
async def get_product(product_id: ObjectId, db: Session = Depends(get_db)):
	return {"success": True, "data": _live(db, product_id).to_dict(expand=True)}


@router.post("", status_code=201)
async def create_product(req: ProductCreate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	product = Product()
	_apply_fields(db, product, req.model_dump())
	_sync_variants(product, req.variants)
	db.add(product)
	db.commit()
	return {"success": True, "data": _live(db, product.id).to_dict()}


@router.patch("/{product_id}")
async def update_product(product_id: ObjectId, req: ProductUpdate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	product = _live(db, product_id)
	_apply_fields(db, product, req.model_dump(exclude_unset=True))
	if req.variants is not None:
		_sync_variants(product, req.variants)
	db.commit()
	db.expire_all()
	return {"success": True, "data": _live(db, product_id).to_dict()}


@router.delete("/{product_id}")
async def delete_product(product_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	product = _live(db, product_id)
	product.soft_delete(admin.id)
	db.commit()
	return {"success": True, "message": "Product deleted successfully"}


# Variants

@router.post("/{product_id}/variants", status_code=201)
async def add_variant(product_id: ObjectId, req: VariantIn, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	product = _live(db, product_id)
	row = ProductVariant(**_variant_values(req), position=len(product.variants))
	product.variants.append(row)
	db.commit()
	db.expire_all()
	return {"success": True, "data": _live(db, product_id).to_dict()}


def _variant(product: Product, variant_id: str) -> ProductVariant:
	row = product.find_variant(variant_id)
	if row is None:
		raise NotFoundError("Variant not found")
	return row


@router.patch("/{product_id}/variants/{variant_id}")
async def update_variant(product_id: ObjectId, variant_id: ObjectId, req: VariantUpdate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	product = _live(db, product_id)
	row = _variant(product, variant_id)
	for field, value in req.model_dump(exclude_unset=True).items():
		setattr(row, field, value)
	db.commit()
	db.expire_all()
	return {"success": True, "data": _live(db, product_id).to_dict()}


@router.delete("/{product_id}/variants/{variant_id}")
async def delete_variant(product_id: ObjectId, variant_id: ObjectId, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	product = _live(db, product_id)
	row = _variant(product, variant_id)
	if len(product.variants) <= 1:
		raise ValidationError("Product must have at least one variant")
	product.variants.remove(row)
	db.commit()
	db.expire_all()
	return {"success": True, "data": _live(db, product_id).to_dict()}
