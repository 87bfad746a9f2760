# Shared fixtures: a throwaway SQLite database, seeded principals and tokens.
# Environment must be set before any campuslane module reads settings.
import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="campuslane-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TMP_DIR, "test.db")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENV"] = "test"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["AWS_ACCESS_KEY_ID"] = "test-access-key"
os.environ["AWS_SECRET_ACCESS_KEY"] = "test-secret-key"
os.environ["AWS_REGION"] = "ap-south-1"
os.environ["S3_BUCKET"] = "campuslane-test"

import pytest
from fastapi.testclient import TestClient

from campuslane.db import Base, SessionLocal, engine
from campuslane.errors import AuthenticationError
from campuslane.google_client import get_google_client
from campuslane.main import app
from campuslane.models import (
	Admin,
	Category,
	Chapter,
	Content,
	Product,
	ProductVariant,
	SchoolClass,
	Subject,
	User,
)
from campuslane.ratelimit import auth_limiter, general_limiter, upload_limiter
from campuslane.routers.auth import create_admin_token, create_user_token, hash_password


class FakeGoogle:
	"""Stands in for the Google userinfo call; tokens map to canned profiles."""

	def __init__(self):
		self.profiles = {}

	async def fetch_userinfo(self, access_token):
		profile = self.profiles.get(access_token)
		if profile is None:
			raise AuthenticationError("Invalid Google token")
		return profile


def bearer(token):
	return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def _fresh_database():
	Base.metadata.drop_all(bind=engine)
	Base.metadata.create_all(bind=engine)
	for limiter in (auth_limiter, upload_limiter, general_limiter):
		limiter.reset()
	yield
	app.dependency_overrides.clear()


@pytest.fixture
def db():
	session = SessionLocal()
	try:
		yield session
	finally:
		session.close()


@pytest.fixture
def client():
	return TestClient(app)


@pytest.fixture
def google():
	fake = FakeGoogle()
	app.dependency_overrides[get_google_client] = lambda: fake
	return fake


def _add(db, row):
	db.add(row)
	db.commit()
	db.refresh(row)
	return row


@pytest.fixture
def admin(db):
	return _add(db, Admin(email="admin@campuslane.com", password_hash=hash_password("admin123"), name="Super Admin"))


@pytest.fixture
def teacher(db):
	return _add(db, User(name="Priya Sharma", email="teacher@example.com", role="teacher", approval_status="approved"))


@pytest.fixture
def pending_teacher(db):
	return _add(db, User(name="Neha Rao", email="newteacher@example.com", role="teacher", approval_status="pending"))


@pytest.fixture
def student(db):
	return _add(db, User(name="Aarav Verma", email="student@example.com", role="student", age=8, student_code="ABC123"))


@pytest.fixture
def parent(db):
	return _add(db, User(name="Rahul Verma", email="parent@example.com", role="parent"))


@pytest.fixture
def admin_headers(admin):
	return bearer(create_admin_token(admin))


@pytest.fixture
def teacher_headers(teacher):
	return bearer(create_user_token(teacher))


@pytest.fixture
def student_headers(student):
	return bearer(create_user_token(student))


@pytest.fixture
def parent_headers(parent):
	return bearer(create_user_token(parent))


@pytest.fixture
def catalog(db):
	"""One class -> subject -> chapter chain."""
	school_class = _add(db, SchoolClass(name="Class 3"))
	subject = _add(db, Subject(name="English", class_id=school_class.id))
	chapter = _add(db, Chapter(name="Grammar Basics", subject_id=subject.id, order=1))
	return {"class": school_class, "subject": subject, "chapter": chapter}


@pytest.fixture
def make_content(db, catalog):
	def factory(uploader, *, title="Grammar Video Lesson", type="video", approval_status="approved", duration=100, **extra):
		row = Content(
			title=title,
			class_id=catalog["class"].id,
			subject_id=catalog["subject"].id,
			chapter_id=catalog["chapter"].id,
			type=type,
			s3_key=None if type == "quiz" else f"uploads/{title.lower().replace(' ', '-')}",
			duration=duration if type == "video" else None,
			file_size=1024 if type == "video" else None,
			uploader_id=uploader.id,
			uploader_role="admin" if isinstance(uploader, Admin) else uploader.role,
			is_admin_content=isinstance(uploader, Admin),
			approval_status=approval_status,
			tags=extra.pop("tags", []),
			**extra,
		)
		return _add(db, row)
	return factory


@pytest.fixture
def product(db):
	category = _add(db, Category(name="School Uniforms"))
	row = Product(name="School Uniform Shirt - White", category_id=category.id, images=[], gender="Unisex")
	row.variants = [
		ProductVariant(name="Size S", price=450, cutoff_price=500, stock=5, position=0),
		ProductVariant(name="Size M", price=500, cutoff_price=550, stock=2, position=1),
	]
	return _add(db, row)
