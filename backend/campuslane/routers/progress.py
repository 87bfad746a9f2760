from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session, joinedload

from ..db import get_db
from ..errors import AuthorizationError, NotFoundError
from ..models import Content, ParentChildLink, Progress, User
from ..progress_report import student_progress_summary
from ..validators import CamelModel, ObjectId
from .auth import Principal, get_principal, require_role


router = APIRouter(prefix="/progress", tags=["progress"])
logger = logging.getLogger("campuslane.progress")

MAX_PING_SECONDS = 300

require_student = require_role("student")
require_parent = require_role("parent")


class OpenRequest(CamelModel):
	content_id: ObjectId


class CompleteRequest(CamelModel):
	content_id: ObjectId
	quiz_score: Optional[float] = Field(default=None, ge=0, le=100)


class VideoPingRequest(CamelModel):
	content_id: ObjectId
	seconds_since_last_ping: float = Field(ge=1, le=MAX_PING_SECONDS)


def _approved_content(db: Session, content_id: str) -> Content:
	content = db.get(Content, content_id)
	if content is None or content.is_deleted or content.approval_status != "approved":
		raise NotFoundError("Content not found or not approved")
	return content


def _snapshot(content: Content) -> dict:
	return {
		"title": content.title,
		"type": content.type,
		"duration": content.duration,
		"s3Key": content.s3_key,
	}


def _find(db: Session, student_id: str, content_id: str) -> Optional[Progress]:
	return (
		db.query(Progress)
		.filter(Progress.student_id == student_id, Progress.content_id == content_id)
		.first()
	)


def _summary_limits(recent_limit: int, watch_limit: int) -> dict:
	return {"recent_limit": max(0, recent_limit), "watch_limit": max(0, watch_limit)}


@router.post("/open")
async def open_content(req: OpenRequest, user: User = Depends(require_student), db: Session = Depends(get_db)):
	content = _approved_content(db, req.content_id)
	progress = _find(db, user.id, content.id)
	if progress is None:
		progress = Progress(
			student_id=user.id,
			content_id=content.id,
			status="in_progress",
			content_snapshot=_snapshot(content),
			watch_sessions=[],
		)
		db.add(progress)
	elif progress.status == "not_started":
		progress.status = "in_progress"
	progress.apply_status_rules()
	db.commit()
	db.refresh(progress)
	return {"success": True, "data": progress.to_dict()}


@router.post("/complete")
async def complete_content(req: CompleteRequest, user: User = Depends(require_student), db: Session = Depends(get_db)):
	progress = _find(db, user.id, req.content_id)
	if progress is None:
		raise NotFoundError("Progress not found. Please open the content first.")
	progress.status = "completed"
	progress.completed_at = datetime.utcnow()
	progress.progress_percent = 100
	if req.quiz_score is not None:
		progress.quiz_score = req.quiz_score
	db.commit()
	db.refresh(progress)
	return {"success": True, "data": progress.to_dict()}


@router.post("/video/ping")
async def video_ping(req: VideoPingRequest, user: User = Depends(require_student), db: Session = Depends(get_db)):
	content = _approved_content(db, req.content_id)
	seconds = min(max(0, req.seconds_since_last_ping), MAX_PING_SECONDS)
	now = datetime.utcnow()

	progress = _find(db, user.id, content.id)
	if progress is None:
		progress = Progress(
			student_id=user.id,
			content_id=content.id,
			status="in_progress",
			time_spent=0,
			last_watched_second=0,
			progress_percent=0,
			watch_sessions=[],
			content_snapshot=_snapshot(content),
		)
		db.add(progress)

	progress.time_spent = (progress.time_spent or 0) + seconds
	progress.last_watched_second = (progress.last_watched_second or 0) + seconds
	# JSON columns only persist on reassignment
	progress.watch_sessions = list(progress.watch_sessions or []) + [
		{"startedAt": now.isoformat() + "Z", "duration": seconds}
	]
	if content.duration:
		progress.progress_percent = min(progress.time_spent / content.duration * 100, 100)
	progress.apply_status_rules(now)
	db.commit()
	db.refresh(progress)
	return {"success": True, "data": progress.to_dict()}


@router.get("/mine")
async def my_progress(
	class_id: Optional[ObjectId] = Query(default=None, alias="classId"),
	subject_id: Optional[ObjectId] = Query(default=None, alias="subjectId"),
	recent_limit: int = Query(default=10, alias="recentLimit"),
	watch_limit: int = Query(default=50, alias="watchLimit"),
	user: User = Depends(require_student),
	db: Session = Depends(get_db),
):
	summary = student_progress_summary(
		db, user.id, class_id=class_id, subject_id=subject_id, **_summary_limits(recent_limit, watch_limit)
	)
	return {"success": True, "data": summary}


@router.get("/recent")
async def recent_progress(limit: int = Query(default=10, ge=1, le=100), user: User = Depends(require_student), db: Session = Depends(get_db)):
	rows = (
		db.query(Progress)
		.options(joinedload(Progress.content))
		.filter(Progress.student_id == user.id)
		.order_by(Progress.updated_at.desc())
		.limit(limit)
		.all()
	)
	data = []
	for row in rows:
		content = row.content
		data.append({
			"_id": row.id,
			"contentId": {
				"_id": content.id,
				"title": content.title,
				"type": content.type,
				"thumbnailKey": content.thumbnail_key,
				"s3Key": content.s3_key,
			} if content else None,
			"contentSnapshot": row.content_snapshot,
			"status": row.status,
			"progressPercent": row.progress_percent,
			"updatedAt": row.updated_at,
		})
	return {"success": True, "data": data}


@router.get("/content/{content_id}")
async def content_progress(content_id: ObjectId, user: User = Depends(require_student), db: Session = Depends(get_db)):
	rows = db.query(Progress).filter(Progress.content_id == content_id, Progress.student_id == user.id).all()
	return {"success": True, "data": [r.to_dict() for r in rows]}


@router.get("/child/{child_id}")
async def child_progress(
	child_id: ObjectId,
	class_id: Optional[ObjectId] = Query(default=None, alias="classId"),
	subject_id: Optional[ObjectId] = Query(default=None, alias="subjectId"),
	recent_limit: int = Query(default=10, alias="recentLimit"),
	watch_limit: int = Query(default=50, alias="watchLimit"),
	user: User = Depends(require_parent),
	db: Session = Depends(get_db),
):
	link = (
		db.query(ParentChildLink)
		.filter(
			ParentChildLink.parent_id == user.id,
			ParentChildLink.child_id == child_id,
			ParentChildLink.status == "approved",
		)
		.first()
	)
	if link is None:
		raise AuthorizationError("You do not have permission to view this child's progress")
	summary = student_progress_summary(
		db, child_id, class_id=class_id, subject_id=subject_id, **_summary_limits(recent_limit, watch_limit)
	)
	return {"success": True, "data": summary}


@router.delete("/{progress_id}")
async def delete_progress(progress_id: ObjectId, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
	if not principal.is_admin and principal.role != "teacher":
		raise AuthorizationError("Insufficient permissions")
	progress = db.get(Progress, progress_id)
	if progress is None:
		raise NotFoundError("Progress record not found")
	db.delete(progress)
	db.commit()
	logger.info("progress %s deleted by %s %s", progress_id, principal.role, principal.id)
	return {"success": True, "message": "Progress record deleted successfully"}
