"""Notification producers.

Helpers add rows to the session; the caller commits together with the
change that triggered them.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
from .models import Admin, Notification, User


logger = logging.getLogger("campuslane.notifications")


def create_notification(
	db: Session,
	*,
	user_id: str,
	role: str,
	type: str,
	title: str,
	body: str,
	meta: Optional[Dict[str, Any]] = None,
	ref_id: Optional[str] = None,
) -> Notification:
	row = Notification(
		user_id=user_id,
		role=role,
		type=type,
		title=title,
		body=body,
		meta=meta,
		ref_id=ref_id,
	)
	db.add(row)
	logger.debug("notification %s -> %s:%s", type, role, user_id)
	return row


def notify_teacher_signup(db: Session, teacher: User) -> int:
	admins = db.query(Admin).all()
	for admin in admins:
		create_notification(
			db,
			user_id=admin.id,
			role="admin",
			type="teacher_signup",
			title="New Teacher Registration",
			body=f"{teacher.name} has signed up as a teacher and is pending approval",
			meta={"teacherId": teacher.id},
			ref_id=teacher.id,
		)
	return len(admins)


def notify_content_submission(db: Session, content_id: str, content_title: str) -> None:
	"""One pending-approval notification per admin per content, refreshed on every edit."""
	now = datetime.utcnow()
	for admin in db.query(Admin).all():
		row = (
			db.query(Notification)
			.filter(
				Notification.user_id == admin.id,
				Notification.role == "admin",
				Notification.ref_id == content_id,
				Notification.type == "content_pending",
			)
			.first()
		)
		if row is None:
			create_notification(
				db,
				user_id=admin.id,
				role="admin",
				type="content_pending",
				title="Content Pending Approval",
				body=f'Content "{content_title}" is pending approval',
				meta={"contentId": content_id},
				ref_id=content_id,
			)
			continue
		row.title = "Content Pending Approval"
		row.body = f'Content "{content_title}" is pending approval'
		row.meta = {"contentId": content_id}
		row.is_read = False
		row.is_deleted = False
		row.deleted_at = None
		row.updated_at = now


def notify_content_review(db: Session, content, approved: bool, reason: Optional[str] = None) -> None:
	if content.uploader_role != "teacher":
		return
	if approved:
		title = "Content Approved"
		body = f'Your content "{content.title}" has been approved'
	else:
		title = "Content Rejected"
		body = f'Your content "{content.title}" has been rejected'
		if reason:
			body += f": {reason}"
	create_notification(
		db,
		user_id=content.uploader_id,
		role="teacher",
		type="content_approved" if approved else "content_rejected",
		title=title,
		body=body,
		meta={"contentId": content.id, "reason": reason} if reason else {"contentId": content.id},
		ref_id=content.id,
	)


def notify_teacher_review(db: Session, teacher: User, approved: bool, reason: Optional[str] = None) -> None:
	if approved:
		title = "Account Approved"
		body = "Your teacher account has been approved. You can now upload content."
	else:
		title = "Account Rejected"
		body = "Your teacher account application has been rejected"
		if reason:
			body += f": {reason}"
	create_notification(
		db,
		user_id=teacher.id,
		role="teacher",
		type="teacher_approved" if approved else "teacher_rejected",
		title=title,
		body=body,
		meta={"reason": reason} if reason else None,
		ref_id=teacher.id,
	)


def notify_parent_link_request(db: Session, student_id: str, parent_name: str, link_id: str) -> None:
	create_notification(
		db,
		user_id=student_id,
		role="student",
		type="parent_link_request",
		title="Parent Link Request",
		body=f"{parent_name} wants to link to your account",
		meta={"linkId": link_id},
		ref_id=link_id,
	)


def notify_parent_link_response(db: Session, parent_id: str, child_name: str, link_id: str, approved: bool) -> None:
	verb = "approved" if approved else "rejected"
	create_notification(
		db,
		user_id=parent_id,
		role="parent",
		type="parent_link_" + verb,
		title="Link Request " + verb.capitalize(),
		body=f"{child_name} has {verb} your link request",
		meta={"linkId": link_id},
		ref_id=link_id,
	)


def notify_order_status(db: Session, user_id: str, order_id: str, status: str) -> None:
	user = db.get(User, user_id)
	create_notification(
		db,
		user_id=user_id,
		role=(user.role if user else None) or "parent",
		type="order_status",
		title="Order Update",
		body=f"Your order status has been updated to: {status}",
		meta={"orderId": order_id, "status": status},
		ref_id=order_id,
	)
