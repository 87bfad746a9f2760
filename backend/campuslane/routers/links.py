"""Parent-child account links.

Mounted under both ``/parent`` and ``/student``; each route checks the
caller's role itself.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from pydantic import Field, model_validator
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFoundError, ValidationError
from ..models import ParentChildLink, User
from ..notifications import notify_parent_link_request, notify_parent_link_response
from ..validators import CamelModel, ObjectId
from .auth import require_role


router = APIRouter(tags=["parent-child"])

require_parent = require_role("parent")
require_student = require_role("student")


class LinkRequest(CamelModel):
	child_id: Optional[ObjectId] = None
	student_code: Optional[str] = Field(default=None, min_length=6, max_length=6)

	@model_validator(mode="after")
	def _check(self):
		if not self.child_id and not self.student_code:
			raise ValueError("Either childId or studentCode is required")
		return self


def _student_brief(child: User) -> dict:
	return {"_id": child.id, "name": child.name, "age": child.age, "studentCode": child.student_code}


@router.post("/links")
async def create_link(req: LinkRequest, parent: User = Depends(require_parent), db: Session = Depends(get_db)):
	query = db.query(User).filter(User.role == "student", User.is_deleted.is_(False))
	if req.child_id:
		query = query.filter(User.id == req.child_id)
	else:
		query = query.filter(User.student_code == req.student_code.upper())
	child = query.first()
	if child is None:
		raise NotFoundError("Student not found")

	link = (
		db.query(ParentChildLink)
		.filter(ParentChildLink.parent_id == parent.id, ParentChildLink.child_id == child.id)
		.first()
	)
	if link is not None and link.status == "approved":
		raise ValidationError("Link already exists and is approved")
	if link is not None and link.status == "pending":
		raise ValidationError("Link request is already pending")

	if link is not None:
		# Rejected earlier; re-open the same request
		link.status = "pending"
		link.requested_at = datetime.utcnow()
		link.responded_at = None
		status_code, message = 200, "Link request sent again"
	else:
		link = ParentChildLink(parent_id=parent.id, child_id=child.id, status="pending", requested_at=datetime.utcnow())
		db.add(link)
		db.flush()
		status_code, message = 201, "Link request sent successfully"

	notify_parent_link_request(db, child.id, parent.name, link.id)
	db.commit()
	db.refresh(link)
	body = {
		"success": True,
		"data": {"link": link.to_dict(), "student": _student_brief(child)},
		"message": message,
	}
	return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


@router.get("/links")
async def parent_links(parent: User = Depends(require_parent), db: Session = Depends(get_db)):
	links = (
		db.query(ParentChildLink)
		.filter(ParentChildLink.parent_id == parent.id, ParentChildLink.status == "approved")
		.order_by(ParentChildLink.responded_at.desc())
		.all()
	)
	data = []
	for link in links:
		item = link.to_dict()
		child = link.child
		item["childId"] = {
			"_id": child.id,
			"name": child.name,
			"email": child.email,
			"age": child.age,
			"studentCode": child.student_code,
		}
		data.append(item)
	return {"success": True, "data": data}


@router.get("/links/pending")
async def pending_links(student: User = Depends(require_student), db: Session = Depends(get_db)):
	links = (
		db.query(ParentChildLink)
		.filter(ParentChildLink.child_id == student.id, ParentChildLink.status == "pending")
		.order_by(ParentChildLink.requested_at.desc())
		.all()
	)
	data = []
	for link in links:
		item = link.to_dict()
		parent = link.parent
		item["parentId"] = {"_id": parent.id, "name": parent.name, "email": parent.email, "phone": parent.phone}
		data.append(item)
	return {"success": True, "data": data}


def _respond(db: Session, student: User, link_id: str, approved: bool) -> ParentChildLink:
	link = (
		db.query(ParentChildLink)
		.filter(
			ParentChildLink.id == link_id,
			ParentChildLink.child_id == student.id,
			ParentChildLink.status == "pending",
		)
		.first()
	)
	if link is None:
		raise NotFoundError("Link request not found")
	link.status = "approved" if approved else "rejected"
	link.responded_at = datetime.utcnow()
	notify_parent_link_response(db, link.parent_id, student.name, link.id, approved)
	db.commit()
	db.refresh(link)
	return link


@router.patch("/links/{link_id}/approve")
async def approve_link(link_id: ObjectId, student: User = Depends(require_student), db: Session = Depends(get_db)):
	link = _respond(db, student, link_id, True)
	return {"success": True, "data": link.to_dict(), "message": "Link approved successfully"}


@router.patch("/links/{link_id}/reject")
async def reject_link(link_id: ObjectId, student: User = Depends(require_student), db: Session = Depends(get_db)):
	link = _respond(db, student, link_id, False)
	return {"success": True, "data": link.to_dict(), "message": "Link rejected successfully"}


@router.delete("/links/{link_id}")
async def delete_link(link_id: ObjectId, student: User = Depends(require_student), db: Session = Depends(get_db)):
	link = (
		db.query(ParentChildLink)
		.filter(ParentChildLink.id == link_id, ParentChildLink.child_id == student.id)
		.first()
	)
	if link is None:
		raise NotFoundError("Link not found")
	db.delete(link)
	db.commit()
	return {"success": True, "message": "Link deleted successfully"}
