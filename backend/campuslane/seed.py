"""Reset the database and load demo data.

Run with ``python -m campuslane.seed`` from the ``backend`` directory.
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from .db import Base, SessionLocal, engine
from .models import (
	Admin,
	Category,
	Chapter,
	Content,
	Product,
	ProductVariant,
	School,
	SchoolClass,
	Subject,
	User,
)
from .routers.auth import generate_student_code, hash_password
from .settings import settings


logger = logging.getLogger("campuslane.seed")

CLASS_NAMES = ["Class 1", "Class 2", "Class 3", "Class 4", "Class 5"]

# Subject name -> its chapters, in order
SUBJECT_CHAPTERS = {
	"English": ["Reading Comprehension", "Grammar Basics", "Creative Writing"],
	"Maths": ["Numbers and Operations", "Geometry Basics", "Measurement"],
	"EVS": ["Our Environment", "Plants and Animals", "Human Body"],
	"Spoken English Course": ["Basic Conversations", "Pronunciation Practice"],
}

SCHOOLS = [
	{"name": "Green Valley Public School", "city": "Bengaluru", "state": "Karnataka", "country": "India", "pincode": "560001"},
	{"name": "Sunrise International School", "city": "Pune", "state": "Maharashtra", "country": "India", "pincode": "411001"},
]

CATEGORIES = [
	{"name": "School Uniforms", "description": "Official uniforms for partner schools"},
	{"name": "Books & Stationery", "description": "Workbooks, story books and writing supplies"},
	{"name": "Educational Toys", "description": "Toys that make learning fun"},
]

UNIFORM_IMAGE = "https://images.pexels.com/photos/5212665/pexels-photo-5212665.jpeg"
BOOK_IMAGE = "https://images.pexels.com/photos/159866/books-book-pages-read-literature-159866.jpeg"


def _products(categories, schools, classes):
	uniforms, books, toys = categories
	return [
		{
			"name": "School Uniform Shirt - White",
			"description": "Official white school uniform shirt",
			"category": uniforms, "school": schools[0], "gender": "Unisex", "type": "Shirt",
			"images": [UNIFORM_IMAGE],
			"variants": [("Size S", 450, 500, 50), ("Size M", 450, 500, 45), ("Size L", 450, 500, 30)],
		},
		{
			"name": "Mathematics Workbook Grade 4",
			"description": "Comprehensive mathematics practice workbook",
			"category": books, "class_level": classes["Class 4"], "subject": "Maths", "brand": "EduBooks", "type": "Workbook",
			"images": [BOOK_IMAGE],
			"variants": [("Standard Edition", 250, 300, 100)],
		},
		{
			"name": "Educational Building Blocks",
			"description": "Colorful building blocks for creative learning",
			"category": toys, "gender": "Unisex", "brand": "LearnFun", "type": "Building Toy",
			"images": ["https://images.pexels.com/photos/374918/pexels-photo-374918.jpeg"],
			"variants": [("50 Pieces Set", 800, 1000, 25), ("100 Pieces Set", 1400, 1600, 15)],
		},
		{
			"name": "School Uniform Trouser - Navy",
			"description": "Official navy blue school uniform trouser",
			"category": uniforms, "school": schools[0], "gender": "Boys", "type": "Trouser",
			"images": [UNIFORM_IMAGE],
			"variants": [("Size 28", 550, 600, 30), ("Size 30", 550, 600, 35), ("Size 32", 550, 600, 20)],
		},
		{
			"name": "English Story Books Collection",
			"description": "Set of 5 illustrated English story books",
			"category": books, "class_level": classes["Class 3"], "subject": "English", "brand": "StoryTime", "type": "Story Books",
			"images": [BOOK_IMAGE],
			"variants": [("Beginner Level", 650, 750, 40), ("Intermediate Level", 750, 850, 35)],
		},
	]


def seed(db: Session) -> None:
	admin = Admin(email=settings.admin_email.lower(), password_hash=hash_password(settings.admin_password), name="Super Admin")
	db.add(admin)

	classes = {}
	subjects = {}
	for class_name in CLASS_NAMES:
		school_class = SchoolClass(name=class_name, description=f"Curriculum for {class_name}")
		db.add(school_class)
		classes[class_name] = school_class
		for subject_name, chapter_names in SUBJECT_CHAPTERS.items():
			subject = Subject(name=subject_name, school_class=school_class)
			db.add(subject)
			subjects[(class_name, subject_name)] = subject
			for order, chapter_name in enumerate(chapter_names, start=1):
				db.add(Chapter(name=chapter_name, subject=subject, order=order))
	db.flush()
	logger.info("created %d classes with subjects and chapters", len(classes))

	teacher = User(
		name="Priya Sharma", email="teacher@campuslane.com", role="teacher",
		approval_status="approved", city="Bengaluru", state="Karnataka", country="India",
	)
	parent = User(name="Rahul Verma", email="parent@campuslane.com", role="parent", city="Pune", country="India")
	student = User(
		name="Aarav Verma", email="student@campuslane.com", role="student",
		age=8, class_level_id=classes["Class 3"].id, student_code=generate_student_code(db),
	)
	db.add_all([teacher, parent, student])
	db.flush()

	english = subjects[("Class 3", "English")]
	first_chapter = db.query(Chapter).filter(Chapter.subject_id == english.id, Chapter.order == 1).one()
	common = {
		"class_id": classes["Class 3"].id,
		"subject_id": english.id,
		"chapter_id": first_chapter.id,
		"uploader_id": teacher.id,
		"uploader_role": "teacher",
	}
	db.add_all([
		Content(
			title="Introduction to Reading", description="Basic reading skills and techniques",
			type="file", s3_key="uploads/sample-document.pdf", file_url="https://example.com/sample-document.pdf",
			approval_status="pending", tags=["reading", "basics"], **common,
		),
		Content(
			title="Grammar Video Lesson", description="Interactive video about basic grammar",
			type="video", s3_key="uploads/sample-video.mp4", video_url="https://example.com/sample-video.mp4",
			duration=600, file_size=50 * 1024 * 1024,
			approval_status="approved", tags=["grammar", "video"], **common,
		),
		Content(
			title="Reading Comprehension Quiz", description="Test your reading understanding",
			type="quiz", quiz_type="googleForm", google_form_url="https://forms.google.com/sample-quiz",
			approval_status="approved", tags=["quiz", "comprehension"], **common,
		),
	])

	schools = [School(**data) for data in SCHOOLS]
	categories = [Category(**data) for data in CATEGORIES]
	db.add_all(schools + categories)
	db.flush()

	for item in _products(categories, schools, classes):
		product = Product(
			name=item["name"],
			description=item["description"],
			category_id=item["category"].id,
			school_id=item["school"].id if item.get("school") else None,
			class_level_id=item["class_level"].id if item.get("class_level") else None,
			gender=item.get("gender"),
			subject=item.get("subject"),
			brand=item.get("brand"),
			type=item.get("type"),
			images=item["images"],
		)
		for position, (name, price, cutoff, stock) in enumerate(item["variants"]):
			product.variants.append(ProductVariant(name=name, price=price, cutoff_price=cutoff, stock=stock, position=position))
		db.add(product)
	db.commit()

	logger.info("admin login: %s / %s", admin.email, settings.admin_password)
	logger.info("sample teacher: %s", teacher.email)
	logger.info("sample parent: %s", parent.email)
	logger.info("sample student: %s (code %s)", student.email, student.student_code)


def main() -> None:
	logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
	Base.metadata.drop_all(bind=engine)
	Base.metadata.create_all(bind=engine)
	db = SessionLocal()
	try:
		seed(db)
	finally:
		db.close()
	logger.info("database seeding completed")


if __name__ == "__main__":
	main()
