from campuslane.models import Content, Notification
from campuslane.routers.auth import create_user_token
from campuslane.storage import build_upload_key

from conftest import bearer


def _content_body(catalog, **overrides):
	body = {
		"title": "Nouns and Verbs",
		"description": "Parts of speech",
		"classId": catalog["class"].id,
		"subjectId": catalog["subject"].id,
		"chapterId": catalog["chapter"].id,
		"type": "video",
		"s3Key": "uploads/nouns.mp4",
		"duration": 120,
		"fileSize": 2048,
		"tags": ["grammar"],
	}
	body.update(overrides)
	return body


# Classes, subjects and chapters

def test_class_crud_and_duplicate_name(client, admin_headers):
	r = client.post("/api/v1/classes", headers=admin_headers, json={"name": "Class 1"})
	assert r.status_code == 201
	class_id = r.json()["data"]["_id"]
	assert len(class_id) == 24

	r = client.post("/api/v1/classes", headers=admin_headers, json={"name": "Class 1"})
	assert r.status_code == 409
	assert r.json()["error"]["message"] == "Class with this name already exists"

	client.post("/api/v1/classes", headers=admin_headers, json={"name": "Class 2"})
	r = client.get("/api/v1/classes?limit=1")
	body = r.json()
	assert [c["name"] for c in body["data"]] == ["Class 1"]
	assert body["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2, "hasNext": True, "hasPrev": False}

	r = client.delete(f"/api/v1/classes/{class_id}", headers=admin_headers)
	assert r.status_code == 200
	assert client.get(f"/api/v1/classes/{class_id}").status_code == 404


def test_class_writes_need_an_admin(client, student_headers):
	r = client.post("/api/v1/classes", headers=student_headers, json={"name": "Class 9"})
	assert r.status_code == 401


def test_subject_requires_existing_class(client, admin_headers):
	r = client.post("/api/v1/subjects", headers=admin_headers, json={"name": "Maths", "classId": "a" * 24})
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "Class not found"


def test_chapters_are_listed_in_order(client, admin_headers, catalog):
	subject_id = catalog["subject"].id
	client.post("/api/v1/chapters", headers=admin_headers, json={"name": "Creative Writing", "subjectId": subject_id, "order": 3})
	client.post("/api/v1/chapters", headers=admin_headers, json={"name": "Reading", "subjectId": subject_id, "order": 0})
	r = client.get(f"/api/v1/chapters?subjectId={subject_id}")
	assert [c["name"] for c in r.json()["data"]] == ["Reading", "Grammar Basics", "Creative Writing"]


def test_catalog_updates_reject_nulls(client, admin_headers, catalog):
	class_id = catalog["class"].id
	r = client.patch(f"/api/v1/classes/{class_id}", headers=admin_headers, json={"name": None})
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "name cannot be null"

	r = client.patch(f"/api/v1/subjects/{catalog['subject'].id}", headers=admin_headers, json={"classId": None})
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "classId cannot be null"

	r = client.patch(f"/api/v1/chapters/{catalog['chapter'].id}", headers=admin_headers, json={"order": None})
	assert r.status_code == 400

	# A real name clash is still a conflict
	client.post("/api/v1/classes", headers=admin_headers, json={"name": "Class 4"})
	r = client.patch(f"/api/v1/classes/{class_id}", headers=admin_headers, json={"name": "Class 4"})
	assert r.status_code == 409
	assert r.json()["error"]["message"] == "Class with this name already exists"

	# Nullable fields can still be cleared
	r = client.patch(f"/api/v1/classes/{class_id}", headers=admin_headers, json={"description": None})
	assert r.status_code == 200


# Content

def test_teacher_upload_is_pending_and_queued_for_review(client, teacher_headers, admin, catalog, db):
	r = client.post("/api/v1/content", headers=teacher_headers, json=_content_body(catalog))
	assert r.status_code == 201, r.text
	data = r.json()["data"]
	assert data["approvalStatus"] == "pending"
	assert data["uploaderRole"] == "teacher"
	assert data["isAdminContent"] is False

	pending = db.query(Notification).filter(Notification.user_id == admin.id, Notification.type == "content_pending").all()
	assert len(pending) == 1
	assert pending[0].meta == {"contentId": data["_id"]}


def test_admin_upload_is_approved(client, admin_headers, catalog):
	r = client.post("/api/v1/content", headers=admin_headers, json=_content_body(catalog))
	assert r.status_code == 201
	data = r.json()["data"]
	assert data["approvalStatus"] == "approved"
	assert data["isAdminContent"] is True


def test_only_approved_teachers_and_admins_upload(client, pending_teacher, student_headers, catalog):
	r = client.post("/api/v1/content", headers=bearer(create_user_token(pending_teacher)), json=_content_body(catalog))
	assert r.status_code == 403
	assert r.json()["error"]["message"] == "Teacher approval required"

	r = client.post("/api/v1/content", headers=student_headers, json=_content_body(catalog))
	assert r.status_code == 403


def test_content_type_rules(client, admin_headers, catalog):
	r = client.post("/api/v1/content", headers=admin_headers, json=_content_body(catalog, duration=None))
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "duration and fileSize are required for video content"

	r = client.post("/api/v1/content", headers=admin_headers, json=_content_body(catalog, type="file", s3Key=None))
	assert r.json()["error"]["message"] == "s3Key is required for non-quiz content"

	quiz = _content_body(catalog, type="quiz", s3Key=None, quizType="native", questions=[])
	r = client.post("/api/v1/content", headers=admin_headers, json=quiz)
	assert r.json()["error"]["message"] == "At least one question is required for native quizzes"

	quiz["questions"] = [{"questionText": "Pick the noun", "options": ["run", "cat", "blue", "fast"], "correctOption": 1}]
	r = client.post("/api/v1/content", headers=admin_headers, json=quiz)
	assert r.status_code == 201
	assert r.json()["data"]["questions"][0]["correctOption"] == 1


def test_students_only_see_approved_content(client, student_headers, teacher, make_content):
	make_content(teacher, title="Approved Lesson")
	make_content(teacher, title="Pending Lesson", approval_status="pending")

	r = client.get("/api/v1/content", headers=student_headers)
	titles = [c["title"] for c in r.json()["data"]]
	assert titles == ["Approved Lesson"]
	item = r.json()["data"][0]
	assert item["classId"]["name"] == "Class 3"
	assert item["progress"] is None

	r = client.get("/api/v1/content?approvalStatus=pending")
	assert [c["title"] for c in r.json()["data"]] == ["Pending Lesson"]


def test_content_search_matches_tags(client, teacher, make_content):
	make_content(teacher, title="Lesson A", tags=["phonics"])
	make_content(teacher, title="Lesson B")
	r = client.get("/api/v1/content?search=phonics")
	assert [c["title"] for c in r.json()["data"]] == ["Lesson A"]


def test_pending_content_is_hidden_from_students_by_id(client, student_headers, teacher_headers, teacher, make_content):
	row = make_content(teacher, approval_status="pending")
	assert client.get(f"/api/v1/content/{row.id}", headers=student_headers).status_code == 404
	r = client.get(f"/api/v1/content/{row.id}", headers=teacher_headers)
	assert r.status_code == 200
	assert r.json()["data"]["uploader"]["_id"] == teacher.id


def test_teacher_edit_rules(client, teacher_headers, teacher, make_content, db):
	approved = make_content(teacher, title="Done")
	r = client.patch(f"/api/v1/content/{approved.id}", headers=teacher_headers, json={"title": "Changed"})
	assert r.status_code == 403
	assert r.json()["error"]["message"] == "Cannot edit approved content"

	rejected = make_content(teacher, title="Needs work", approval_status="rejected", rejection_reason="Blurry")
	r = client.patch(f"/api/v1/content/{rejected.id}", headers=teacher_headers, json={"title": "Sharper"})
	assert r.status_code == 200
	data = r.json()["data"]
	assert data["approvalStatus"] == "pending"
	assert data["rejectionReason"] is None

	r = client.patch(f"/api/v1/content/{rejected.id}", headers=teacher_headers, json={"duration": None})
	assert r.status_code == 400


def test_teacher_cannot_touch_someone_elses_content(client, teacher_headers, pending_teacher, make_content):
	row = make_content(pending_teacher, approval_status="pending")
	r = client.delete(f"/api/v1/content/{row.id}", headers=teacher_headers)
	assert r.status_code == 403
	assert r.json()["error"]["message"] == "You can only delete your own content"


def test_admin_review_notifies_teacher(client, admin_headers, teacher, make_content, db):
	row = make_content(teacher, approval_status="pending")
	r = client.patch(f"/api/v1/admin/content/{row.id}/reject", headers=admin_headers, json={"reason": "Audio missing"})
	assert r.status_code == 200
	assert r.json()["data"]["rejectionReason"] == "Audio missing"

	r = client.patch(f"/api/v1/admin/content/{row.id}/approve", headers=admin_headers)
	assert r.json()["data"]["approvalStatus"] == "approved"

	types = [n.type for n in db.query(Notification).filter(Notification.user_id == teacher.id).order_by(Notification.created_at)]
	assert types == ["content_rejected", "content_approved"]


def test_bulk_approve_reports_missing_ids(client, admin_headers, teacher, make_content, db):
	a = make_content(teacher, title="A", approval_status="pending")
	b = make_content(teacher, title="B", approval_status="pending")
	missing = "f" * 24
	r = client.post("/api/v1/admin/content/bulk-approve", headers=admin_headers, json={"ids": [a.id, b.id, missing]})
	assert r.status_code == 200
	assert r.json()["data"] == {"updated": 2, "notFound": [missing]}
	db.expire_all()
	assert {c.approval_status for c in db.query(Content)} == {"approved"}


def test_admin_teacher_approval(client, admin_headers, pending_teacher):
	r = client.get("/api/v1/admin/teachers?status=pending", headers=admin_headers)
	assert [t["_id"] for t in r.json()["data"]] == [pending_teacher.id]

	r = client.patch(f"/api/v1/admin/teachers/{pending_teacher.id}/approve", headers=admin_headers)
	assert r.status_code == 200
	assert r.json()["data"]["approvalStatus"] == "approved"


def test_students_can_only_read_their_own_profile(client, student, student_headers, db):
	from campuslane.models import User
	other = User(name="Other", email="other@example.com", role="student", age=9)
	db.add(other)
	db.commit()

	assert client.get(f"/api/v1/admin/students/{student.id}", headers=student_headers).status_code == 200
	r = client.get(f"/api/v1/admin/students/{other.id}", headers=student_headers)
	assert r.status_code == 403
	assert r.json()["error"]["message"] == "You can only access your own profile"


def test_bookmarks(client, student_headers, teacher, make_content):
	row = make_content(teacher)
	r = client.post("/api/v1/bookmarks", headers=student_headers, json={"contentId": row.id})
	assert r.status_code == 200
	assert [c["_id"] for c in r.json()["data"]["contents"]] == [row.id]

	# Adding twice keeps a single entry
	r = client.post("/api/v1/bookmarks", headers=student_headers, json={"contentId": row.id})
	assert len(r.json()["data"]["contents"]) == 1

	r = client.delete(f"/api/v1/bookmarks/{row.id}", headers=student_headers)
	assert r.json()["data"]["contents"] == []

	r = client.post("/api/v1/bookmarks", headers=student_headers, json={"contentId": "0" * 24})
	assert r.status_code == 404
	assert r.json()["error"]["message"] == "Content not found or inactive"


# Uploads

def test_presign_returns_signed_put_url(client, teacher_headers):
	r = client.post("/api/v1/admin/presign", headers=teacher_headers, json={
		"fileName": "notes.pdf",
		"contentType": "application/pdf",
		"fileSize": 1024,
	})
	assert r.status_code == 200, r.text
	data = r.json()["data"]
	assert data["key"].startswith("uploads/")
	assert data["key"].endswith("-notes.pdf")
	assert data["expires"] == 300
	assert "campuslane-test" in data["url"]
	assert "X-Amz-Signature" in data["url"]


def test_presign_rejects_unsupported_types(client, teacher_headers):
	r = client.post("/api/v1/admin/presign", headers=teacher_headers, json={
		"fileName": "tool.exe",
		"contentType": "application/x-msdownload",
		"fileSize": 1024,
	})
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "Unsupported file type"


def test_upload_keys_are_unique():
	assert build_upload_key("a.png") != build_upload_key("a.png")


def test_content_update_rejects_nulls(client, teacher_headers, teacher, make_content):
	row = make_content(teacher, approval_status="pending")
	for field in ("title", "classId", "type", "tags"):
		r = client.patch(f"/api/v1/content/{row.id}", headers=teacher_headers, json={field: None})
		assert r.status_code == 400, field
		assert r.json()["error"]["message"] == f"{field} cannot be null"

	r = client.get(f"/api/v1/content/{row.id}", headers=teacher_headers)
	assert r.json()["data"]["title"] == "Grammar Video Lesson"


def test_profile_updates_reject_null_names(client, admin_headers, student, student_headers):
	r = client.patch("/api/v1/auth/me", headers=student_headers, json={"name": None})
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "name cannot be null"

	r = client.patch(f"/api/v1/admin/students/{student.id}", headers=admin_headers, json={"name": None})
	assert r.status_code == 400

	r = client.patch("/api/v1/auth/me", headers=student_headers, json={"phone": None})
	assert r.status_code == 200
