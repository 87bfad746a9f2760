from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Admin, Category, Content, Order, OrderItem, Product, Progress, School, Subject, User
from .auth import get_current_admin, require_role, require_teacher_approval


router = APIRouter(prefix="/analytics", tags=["analytics"])

require_teacher = require_role("teacher")


def _round2(value) -> float:
	return round(float(value or 0), 2)


def _completed_sum():
	return func.sum(case((Progress.status == "completed", 1), else_=0))


@router.get("/admin/users")
async def user_analytics(admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	live = db.query(User.role, func.count(User.id)).filter(User.is_deleted.is_(False)).group_by(User.role).all()
	by_role = dict(live)
	teachers = dict(
		db.query(User.approval_status, func.count(User.id))
		.filter(User.is_deleted.is_(False), User.role == "teacher")
		.group_by(User.approval_status)
		.all()
	)
	students = by_role.get("student", 0)
	teacher_total = by_role.get("teacher", 0)
	parents = by_role.get("parent", 0)
	return {
		"success": True,
		"data": {
			"users": {
				"totalStudents": students,
				"totalTeachers": teacher_total,
				"totalParents": parents,
				"total": students + teacher_total + parents,
			},
			"teachers": {
				"pending": teachers.get("pending", 0),
				"approved": teachers.get("approved", 0),
				"rejected": teachers.get("rejected", 0),
			},
		},
	}


@router.get("/admin/content")
async def content_analytics(admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	count = func.count(Content.id)
	by_type = (
		db.query(Content.type, count)
		.filter(Content.is_deleted.is_(False))
		.group_by(Content.type)
		.order_by(count.desc())
		.all()
	)
	by_approval = (
		db.query(Content.approval_status, count)
		.filter(Content.is_deleted.is_(False))
		.group_by(Content.approval_status)
		.all()
	)
	top_subjects = (
		db.query(Subject.name, count)
		.join(Subject, Subject.id == Content.subject_id)
		.filter(Content.is_deleted.is_(False), Content.approval_status == "approved")
		.group_by(Subject.name)
		.order_by(count.desc())
		.limit(5)
		.all()
	)
	return {
		"success": True,
		"data": {
			"contentByType": [{"_id": t, "count": c} for t, c in by_type],
			"contentByApproval": [{"_id": s, "count": c} for s, c in by_approval],
			"topSubjects": [{"_id": n, "count": c} for n, c in top_subjects],
		},
	}


@router.get("/admin/engagement")
async def engagement_analytics(admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	total, completed, avg_time = db.query(func.count(Progress.id), _completed_sum(), func.avg(Progress.time_spent)).one()
	avg_score = db.query(func.avg(Progress.quiz_score)).filter(Progress.quiz_score.isnot(None)).scalar()
	rate = (completed or 0) / total * 100 if total else 0
	return {
		"success": True,
		"data": {
			"completionRate": _round2(rate),
			"avgTimeSpent": round(float(avg_time or 0)),
			"avgQuizScore": _round2(avg_score),
		},
	}


def _revenue_by(db: Session, name_col, join_model, join_on):
	revenue = func.sum(OrderItem.price * OrderItem.quantity)
	rows = (
		db.query(name_col, revenue, func.count(OrderItem.id))
		.join(Order, Order.id == OrderItem.order_id)
		.join(Product, Product.id == OrderItem.product_id)
		.join(join_model, join_on)
		.filter(Order.status != "cancelled")
		.group_by(name_col)
		.order_by(revenue.desc())
		.limit(5)
		.all()
	)
	return [{"_id": name, "revenue": _round2(rev), "orders": n} for name, rev, n in rows]


@router.get("/admin/sales")
async def sales_analytics(admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	orders, revenue, avg_value = (
		db.query(func.count(Order.id), func.sum(Order.total_amount), func.avg(Order.total_amount))
		.filter(Order.status != "cancelled")
		.one()
	)
	return {
		"success": True,
		"data": {
			"totals": {
				"totalOrders": orders,
				"totalRevenue": _round2(revenue),
				"avgOrderValue": _round2(avg_value),
			},
			"byCategory": _revenue_by(db, Category.name, Category, Category.id == Product.category_id),
			"bySchool": _revenue_by(db, School.name, School, School.id == Product.school_id),
		},
	}


@router.get("/teacher/overview")
async def teacher_overview(
	teacher: User = Depends(require_teacher),
	_approved: User = Depends(require_teacher_approval),
	db: Session = Depends(get_db),
):
	statuses = dict(
		db.query(Content.approval_status, func.count(Content.id))
		.filter(Content.uploader_id == teacher.id, Content.is_deleted.is_(False))
		.group_by(Content.approval_status)
		.all()
	)
	views, completions, avg_time, avg_score = (
		db.query(func.count(Progress.id), _completed_sum(), func.avg(Progress.time_spent), func.avg(Progress.quiz_score))
		.join(Content, Content.id == Progress.content_id)
		.filter(Content.uploader_id == teacher.id)
		.one()
	)
	completions = completions or 0
	return {
		"success": True,
		"data": {
			"content": {
				"totalContent": sum(statuses.values()),
				"approved": statuses.get("approved", 0),
				"pending": statuses.get("pending", 0),
				"rejected": statuses.get("rejected", 0),
			},
			"engagement": {
				"totalViews": views,
				"completions": completions,
				"avgTimeSpent": round(float(avg_time or 0)),
				"avgQuizScore": _round2(avg_score),
				"completionRate": _round2(completions / views * 100) if views else 0,
			},
		},
	}
