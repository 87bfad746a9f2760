from __future__ import annotations
import secrets
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy import (
	Boolean,
	Column,
	DateTime,
	Float,
	ForeignKey,
	Integer,
	JSON,
	String,
	Text,
	UniqueConstraint,
)
from sqlalchemy.orm import relationship
from .db import Base


def new_id() -> str:
	# 24 hex chars, the id format both front ends already expect
	return secrets.token_hex(12)


def _ref(obj) -> Optional[Dict[str, Any]]:
	if obj is None:
		return None
	return {"_id": obj.id, "name": obj.name}


class TimestampMixin:
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class SoftDeleteMixin:
	is_deleted = Column(Boolean, default=False, nullable=False, index=True)
	deleted_at = Column(DateTime, nullable=True)
	deleted_by = Column(String(24), nullable=True)

	def soft_delete(self, actor_id: Optional[str]) -> None:
		self.is_deleted = True
		self.deleted_at = datetime.utcnow()
		self.deleted_by = actor_id


class Admin(TimestampMixin, Base):
	__tablename__ = "admins"
	id = Column(String(24), primary_key=True, default=new_id)
	email = Column(String(256), unique=True, nullable=False, index=True)
	password_hash = Column(String(256), nullable=False)
	name = Column(String(128), nullable=False)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"email": self.email,
			"name": self.name,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}


class User(TimestampMixin, SoftDeleteMixin, Base):
	__tablename__ = "users"
	id = Column(String(24), primary_key=True, default=new_id)
	name = Column(String(128), nullable=False)
	email = Column(String(256), unique=True, nullable=False, index=True)
	phone = Column(String(32), nullable=True)
	city = Column(String(128), nullable=True)
	state = Column(String(128), nullable=True)
	country = Column(String(128), nullable=True)
	pincode = Column(String(16), nullable=True)
	# student | teacher | parent
	role = Column(String(16), nullable=False, index=True)
	google_id = Column(String(128), unique=True, nullable=True)
	# Student-only fields
	age = Column(Integer, nullable=True)
	class_level_id = Column(String(24), ForeignKey("classes.id"), nullable=True)
	class_other = Column(String(128), nullable=True)
	student_code = Column(String(16), unique=True, nullable=True)
	# Teacher-only field
	approval_status = Column(String(16), nullable=True, index=True)

	class_level = relationship("SchoolClass")

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"name": self.name,
			"email": self.email,
			"phone": self.phone,
			"city": self.city,
			"state": self.state,
			"country": self.country,
			"pincode": self.pincode,
			"role": self.role,
			"googleId": self.google_id,
			"age": self.age,
			"classLevel": self.class_level_id,
			"classOther": self.class_other,
			"studentCode": self.student_code,
			"approvalStatus": self.approval_status,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}

	def summary(self) -> Dict[str, Any]:
		return {"_id": self.id, "name": self.name, "email": self.email}


class SchoolClass(TimestampMixin, SoftDeleteMixin, Base):
	__tablename__ = "classes"
	id = Column(String(24), primary_key=True, default=new_id)
	name = Column(String(128), unique=True, nullable=False)
	description = Column(Text, nullable=True)
	thumbnail_key = Column(String(512), nullable=True)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"name": self.name,
			"description": self.description,
			"thumbnailKey": self.thumbnail_key,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}


class Subject(TimestampMixin, SoftDeleteMixin, Base):
	__tablename__ = "subjects"
	id = Column(String(24), primary_key=True, default=new_id)
	name = Column(String(128), nullable=False)
	description = Column(Text, nullable=True)
	thumbnail_key = Column(String(512), nullable=True)
	class_id = Column(String(24), ForeignKey("classes.id"), nullable=False, index=True)

	school_class = relationship("SchoolClass")

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"name": self.name,
			"description": self.description,
			"thumbnailKey": self.thumbnail_key,
			"classId": self.class_id,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}


class Chapter(TimestampMixin, SoftDeleteMixin, Base):
	__tablename__ = "chapters"
	id = Column(String(24), primary_key=True, default=new_id)
	name = Column(String(128), nullable=False)
	description = Column(Text, nullable=True)
	thumbnail_key = Column(String(512), nullable=True)
	subject_id = Column(String(24), ForeignKey("subjects.id"), nullable=False, index=True)
	order = Column(Integer, default=0, nullable=False)

	subject = relationship("Subject")

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"name": self.name,
			"description": self.description,
			"thumbnailKey": self.thumbnail_key,
			"subjectId": self.subject_id,
			"order": self.order,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}


class Content(TimestampMixin, SoftDeleteMixin, Base):
	__tablename__ = "contents"
	id = Column(String(24), primary_key=True, default=new_id)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	class_id = Column(String(24), ForeignKey("classes.id"), nullable=False, index=True)
	subject_id = Column(String(24), ForeignKey("subjects.id"), nullable=False, index=True)
	chapter_id = Column(String(24), ForeignKey("chapters.id"), nullable=False, index=True)
	# file | video | quiz | game | image
	type = Column(String(16), nullable=False, index=True)
	s3_key = Column(String(512), nullable=True)
	thumbnail_key = Column(String(512), nullable=True)
	file_url = Column(String(1024), nullable=True)
	video_url = Column(String(1024), nullable=True)
	duration = Column(Float, nullable=True)  # seconds
	file_size = Column(Integer, nullable=True)  # bytes
	quiz_type = Column(String(16), nullable=True)
	google_form_url = Column(String(1024), nullable=True)
	questions = Column(JSON, nullable=True)
	feedback = Column(Text, nullable=True)
	tags = Column(JSON, default=list, nullable=False)
	# Teacher (users.id) or admin (admins.id)
	uploader_id = Column(String(24), nullable=False, index=True)
	uploader_role = Column(String(16), nullable=False)
	is_admin_content = Column(Boolean, default=False, nullable=False)
	approval_status = Column(String(16), default="pending", nullable=False, index=True)
	rejection_reason = Column(Text, nullable=True)

	school_class = relationship("SchoolClass")
	subject = relationship("Subject")
	chapter = relationship("Chapter")

	def to_dict(self, expand: bool = False) -> Dict[str, Any]:
		data = {
			"_id": self.id,
			"title": self.title,
			"description": self.description,
			"classId": self.class_id,
			"subjectId": self.subject_id,
			"chapterId": self.chapter_id,
			"type": self.type,
			"s3Key": self.s3_key,
			"thumbnailKey": self.thumbnail_key,
			"fileUrl": self.file_url,
			"videoUrl": self.video_url,
			"duration": self.duration,
			"fileSize": self.file_size,
			"quizType": self.quiz_type,
			"googleFormUrl": self.google_form_url,
			"questions": self.questions,
			"feedback": self.feedback,
			"tags": self.tags or [],
			"uploaderId": self.uploader_id,
			"uploaderRole": self.uploader_role,
			"isAdminContent": self.is_admin_content,
			"approvalStatus": self.approval_status,
			"rejectionReason": self.rejection_reason,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}
		if expand:
			data["classId"] = _ref(self.school_class)
			data["subjectId"] = _ref(self.subject)
			data["chapterId"] = _ref(self.chapter)
		return data


class Progress(TimestampMixin, Base):
	__tablename__ = "progress"
	__table_args__ = (UniqueConstraint("student_id", "content_id", name="uq_progress_student_content"),)
	id = Column(String(24), primary_key=True, default=new_id)
	student_id = Column(String(24), ForeignKey("users.id"), nullable=False, index=True)
	content_id = Column(String(24), ForeignKey("contents.id"), nullable=False, index=True)
	# not_started | in_progress | completed
	status = Column(String(16), default="not_started", nullable=False)
	time_spent = Column(Float, default=0, nullable=False)
	last_watched_second = Column(Float, default=0, nullable=False)
	progress_percent = Column(Float, default=0, nullable=False)
	watch_sessions = Column(JSON, default=list, nullable=False)
	quiz_score = Column(Float, nullable=True)
	completed_at = Column(DateTime, nullable=True)
	content_snapshot = Column(JSON, nullable=True)

	content = relationship("Content")

	def apply_status_rules(self, now: Optional[datetime] = None) -> None:
		"""Keep status consistent with progress_percent; called before every save."""
		percent = self.progress_percent or 0
		if percent >= 100 and self.status != "completed":
			self.status = "completed"
			self.completed_at = now or datetime.utcnow()
		elif percent > 0 and self.status in (None, "not_started"):
			self.status = "in_progress"

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"studentId": self.student_id,
			"contentId": self.content_id,
			"status": self.status,
			"timeSpent": self.time_spent,
			"lastWatchedSecond": self.last_watched_second,
			"progressPercent": self.progress_percent,
			"watchSessions": self.watch_sessions or [],
			"quizScore": self.quiz_score,
			"completedAt": self.completed_at,
			"contentSnapshot": self.content_snapshot,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}


class ParentChildLink(TimestampMixin, Base):
	__tablename__ = "parent_child_links"
	__table_args__ = (UniqueConstraint("parent_id", "child_id", name="uq_parent_child"),)
	id = Column(String(24), primary_key=True, default=new_id)
	parent_id = Column(String(24), ForeignKey("users.id"), nullable=False, index=True)
	child_id = Column(String(24), ForeignKey("users.id"), nullable=False, index=True)
	# pending | approved | rejected
	status = Column(String(16), default="pending", nullable=False)
	requested_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	responded_at = Column(DateTime, nullable=True)

	parent = relationship("User", foreign_keys=[parent_id])
	child = relationship("User", foreign_keys=[child_id])

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"parentId": self.parent_id,
			"childId": self.child_id,
			"status": self.status,
			"requestedAt": self.requested_at,
			"respondedAt": self.responded_at,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}


class Notification(TimestampMixin, SoftDeleteMixin, Base):
	__tablename__ = "notifications"
	id = Column(String(24), primary_key=True, default=new_id)
	# A users.id or admins.id, depending on role
	user_id = Column(String(24), nullable=False, index=True)
	role = Column(String(16), nullable=False)
	type = Column(String(64), nullable=False)
	title = Column(String(256), nullable=False)
	body = Column(Text, nullable=False)
	is_read = Column(Boolean, default=False, nullable=False, index=True)
	meta = Column(JSON, nullable=True)
	# Id of the entity the notification is about, used for upserts
	ref_id = Column(String(24), nullable=True, index=True)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"userId": self.user_id,
			"role": self.role,
			"type": self.type,
			"title": self.title,
			"body": self.body,
			"isRead": self.is_read,
			"meta": self.meta,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}


class School(TimestampMixin, SoftDeleteMixin, Base):
	__tablename__ = "schools"
	id = Column(String(24), primary_key=True, default=new_id)
	name = Column(String(256), unique=True, nullable=False)
	logo = Column(String(512), nullable=True)
	address = Column(Text, nullable=True)
	city = Column(String(128), nullable=True)
	state = Column(String(128), nullable=True)
	country = Column(String(128), nullable=True)
	pincode = Column(String(16), nullable=True)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"name": self.name,
			"logo": self.logo,
			"address": self.address,
			"city": self.city,
			"state": self.state,
			"country": self.country,
			"pincode": self.pincode,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}


class Category(TimestampMixin, SoftDeleteMixin, Base):
	__tablename__ = "categories"
	id = Column(String(24), primary_key=True, default=new_id)
	name = Column(String(128), nullable=False)
	description = Column(Text, nullable=True)
	image = Column(String(512), nullable=True)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"name": self.name,
			"description": self.description,
			"image": self.image,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}


class Product(TimestampMixin, SoftDeleteMixin, Base):
	__tablename__ = "products"
	id = Column(String(24), primary_key=True, default=new_id)
	name = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	category_id = Column(String(24), ForeignKey("categories.id"), nullable=False, index=True)
	images = Column(JSON, default=list, nullable=False)
	school_id = Column(String(24), ForeignKey("schools.id"), nullable=True, index=True)
	# Boys | Girls | Unisex
	gender = Column(String(16), nullable=True)
	class_level_id = Column(String(24), ForeignKey("classes.id"), nullable=True)
	subject = Column(String(128), nullable=True)
	brand = Column(String(128), nullable=True)
	type = Column(String(128), nullable=True)
	is_active = Column(Boolean, default=True, nullable=False, index=True)

	category = relationship("Category")
	school = relationship("School")
	class_level = relationship("SchoolClass")
	variants = relationship(
		"ProductVariant",
		back_populates="product",
		order_by="ProductVariant.position",
		cascade="all, delete-orphan",
	)

	def find_variant(self, variant_id: str) -> Optional["ProductVariant"]:
		for v in self.variants:
			if v.id == variant_id:
				return v
		return None

	def to_dict(self, expand: bool = False) -> Dict[str, Any]:
		data = {
			"_id": self.id,
			"name": self.name,
			"description": self.description,
			"category": self.category_id,
			"images": self.images or [],
			"variants": [v.to_dict() for v in self.variants],
			"school": self.school_id,
			"gender": self.gender,
			"classLevel": self.class_level_id,
			"subject": self.subject,
			"brand": self.brand,
			"type": self.type,
			"isActive": self.is_active,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}
		if expand:
			data["category"] = _ref(self.category)
			data["school"] = _ref(self.school)
			data["classLevel"] = _ref(self.class_level)
		return data

	def summary(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"name": self.name,
			"images": self.images or [],
			"category": _ref(self.category),
			"variants": [v.to_dict() for v in self.variants],
		}


class ProductVariant(Base):
	__tablename__ = "product_variants"
	id = Column(String(24), primary_key=True, default=new_id)
	product_id = Column(String(24), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
	name = Column(String(128), nullable=False)
	price = Column(Float, nullable=False)
	cutoff_price = Column(Float, nullable=True)
	stock = Column(Integer, default=0, nullable=False)
	images = Column(JSON, default=list, nullable=False)
	position = Column(Integer, default=0, nullable=False)

	product = relationship("Product", back_populates="variants")

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"name": self.name,
			"price": self.price,
			"cutoffPrice": self.cutoff_price,
			"stock": self.stock,
			"images": self.images or [],
		}


class Cart(TimestampMixin, Base):
	__tablename__ = "carts"
	id = Column(String(24), primary_key=True, default=new_id)
	user_id = Column(String(24), ForeignKey("users.id"), unique=True, nullable=False)

	items = relationship("CartItem", back_populates="cart", cascade="all, delete-orphan", order_by="CartItem.created_at")

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"userId": self.user_id,
			"items": [i.to_dict() for i in self.items],
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}


class CartItem(Base):
	__tablename__ = "cart_items"
	id = Column(String(24), primary_key=True, default=new_id)
	cart_id = Column(String(24), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
	product_id = Column(String(24), ForeignKey("products.id"), nullable=False)
	variant_id = Column(String(24), nullable=False)
	quantity = Column(Integer, nullable=False)
	price = Column(Float, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	cart = relationship("Cart", back_populates="items")
	product = relationship("Product")

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"productId": self.product_id,
			"variantId": self.variant_id,
			"quantity": self.quantity,
			"price": self.price,
		}


class Order(TimestampMixin, Base):
	__tablename__ = "orders"
	__table_args__ = (UniqueConstraint("user_id", "idempotency_key", name="uq_order_idempotency"),)
	id = Column(String(24), primary_key=True, default=new_id)
	user_id = Column(String(24), ForeignKey("users.id"), nullable=False, index=True)
	total_amount = Column(Float, nullable=False)
	# pending | confirmed | packed | shipped | out_for_delivery | delivered | cancelled
	status = Column(String(32), default="pending", nullable=False, index=True)
	shipping_address = Column(JSON, nullable=False)
	# COD | Razorpay
	payment_type = Column(String(16), nullable=False)
	# pending | success | failed
	payment_status = Column(String(16), default="pending", nullable=False)
	payment_id = Column(String(128), nullable=True)
	delivery_rate = Column(Float, default=0, nullable=False)
	free_shipping = Column(Boolean, default=False, nullable=False)
	idempotency_key = Column(String(128), nullable=True)

	items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.position")

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"userId": self.user_id,
			"items": [i.to_dict() for i in self.items],
			"totalAmount": self.total_amount,
			"status": self.status,
			"shippingAddress": self.shipping_address,
			"paymentType": self.payment_type,
			"paymentStatus": self.payment_status,
			"paymentId": self.payment_id,
			"deliveryRate": self.delivery_rate,
			"freeShipping": self.free_shipping,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}


class OrderItem(Base):
	__tablename__ = "order_items"
	id = Column(String(24), primary_key=True, default=new_id)
	order_id = Column(String(24), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
	product_id = Column(String(24), ForeignKey("products.id"), nullable=False, index=True)
	variant_id = Column(String(24), nullable=False)
	quantity = Column(Integer, nullable=False)
	price = Column(Float, nullable=False)
	# {name, price, images} as bought
	variant = Column(JSON, nullable=True)
	position = Column(Integer, default=0, nullable=False)

	order = relationship("Order", back_populates="items")
	product = relationship("Product")

	def to_dict(self) -> Dict[str, Any]:
		return {
			"_id": self.id,
			"productId": self.product_id,
			"variantId": self.variant_id,
			"quantity": self.quantity,
			"price": self.price,
			"variant": self.variant,
		}


class WishlistItem(Base):
	__tablename__ = "wishlist_items"
	user_id = Column(String(24), ForeignKey("users.id"), primary_key=True)
	product_id = Column(String(24), ForeignKey("products.id"), primary_key=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	product = relationship("Product")


class BookmarkItem(Base):
	__tablename__ = "bookmark_items"
	user_id = Column(String(24), ForeignKey("users.id"), primary_key=True)
	content_id = Column(String(24), ForeignKey("contents.id"), primary_key=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	content = relationship("Content")


class Review(TimestampMixin, SoftDeleteMixin, Base):
	__tablename__ = "reviews"
	id = Column(String(24), primary_key=True, default=new_id)
	product_id = Column(String(24), ForeignKey("products.id"), nullable=False, index=True)
	user_id = Column(String(24), ForeignKey("users.id"), nullable=False, index=True)
	rating = Column(Integer, nullable=False)
	comment = Column(Text, nullable=True)

	product = relationship("Product")
	user = relationship("User")

	def to_dict(self, expand: bool = False) -> Dict[str, Any]:
		data = {
			"_id": self.id,
			"productId": self.product_id,
			"userId": self.user_id,
			"rating": self.rating,
			"comment": self.comment,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}
		if expand:
			data["productId"] = _ref(self.product)
			data["userId"] = {"_id": self.user.id, "name": self.user.name} if self.user else None
		return data
