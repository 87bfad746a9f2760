from campuslane.models import Progress
from campuslane.routers.auth import create_user_token

from conftest import bearer
from test_store import _checkout, _variants


def test_user_analytics(client, admin_headers, teacher, pending_teacher, student, parent):
	r = client.get("/api/v1/analytics/admin/users", headers=admin_headers)
	assert r.status_code == 200
	assert r.json()["data"] == {
		"users": {"totalStudents": 1, "totalTeachers": 2, "totalParents": 1, "total": 4},
		"teachers": {"pending": 1, "approved": 1, "rejected": 0},
	}


def test_analytics_are_admin_only(client, teacher_headers):
	assert client.get("/api/v1/analytics/admin/users", headers=teacher_headers).status_code == 401


def test_content_analytics(client, admin_headers, teacher, make_content):
	make_content(teacher, title="V1")
	make_content(teacher, title="V2", approval_status="pending")
	make_content(teacher, title="Pic", type="image")

	data = client.get("/api/v1/analytics/admin/content", headers=admin_headers).json()["data"]
	assert data["contentByType"] == [{"_id": "video", "count": 2}, {"_id": "image", "count": 1}]
	assert sorted((c["_id"], c["count"]) for c in data["contentByApproval"]) == [("approved", 2), ("pending", 1)]
	assert data["topSubjects"] == [{"_id": "English", "count": 2}]


def test_engagement_analytics(client, admin_headers, student, teacher, make_content, db):
	a = make_content(teacher, title="A")
	b = make_content(teacher, title="B")
	db.add_all([
		Progress(student_id=student.id, content_id=a.id, status="completed", time_spent=100, quiz_score=90, watch_sessions=[]),
		Progress(student_id=student.id, content_id=b.id, status="in_progress", time_spent=51, watch_sessions=[]),
	])
	db.commit()

	data = client.get("/api/v1/analytics/admin/engagement", headers=admin_headers).json()["data"]
	assert data == {"completionRate": 50.0, "avgTimeSpent": 76, "avgQuizScore": 90.0}


def test_sales_analytics(client, admin_headers, parent_headers, product):
	small, _ = _variants(product)
	client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": small, "quantity": 2})
	assert _checkout(client, parent_headers).status_code == 201

	data = client.get("/api/v1/analytics/admin/sales", headers=admin_headers).json()["data"]
	assert data["totals"] == {"totalOrders": 1, "totalRevenue": 900.0, "avgOrderValue": 900.0}
	assert data["byCategory"] == [{"_id": "School Uniforms", "revenue": 900.0, "orders": 1}]
	assert data["bySchool"] == []


def test_teacher_overview(client, teacher_headers, teacher, student, make_content, db):
	done = make_content(teacher, title="Done")
	make_content(teacher, title="Waiting", approval_status="pending")
	make_content(teacher, title="Nope", approval_status="rejected")
	db.add(Progress(student_id=student.id, content_id=done.id, status="completed", time_spent=40, watch_sessions=[]))
	db.commit()

	data = client.get("/api/v1/analytics/teacher/overview", headers=teacher_headers).json()["data"]
	assert data["content"] == {"totalContent": 3, "approved": 1, "pending": 1, "rejected": 1}
	assert data["engagement"] == {
		"totalViews": 1,
		"completions": 1,
		"avgTimeSpent": 40,
		"avgQuizScore": 0.0,
		"completionRate": 100.0,
	}


def test_teacher_overview_needs_approval(client, pending_teacher, student_headers):
	r = client.get("/api/v1/analytics/teacher/overview", headers=bearer(create_user_token(pending_teacher)))
	assert r.status_code == 403
	assert client.get("/api/v1/analytics/teacher/overview", headers=student_headers).status_code == 403
