from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Literal, Optional
import logging
import secrets
import string

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import Field, model_validator

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..errors import AuthenticationError, AuthorizationError, ValidationError
from ..google_client import GoogleClient, get_google_client
from ..models import Admin, SchoolClass, User
from ..notifications import notify_teacher_signup
from ..ratelimit import auth_limiter
from ..validators import CamelModel, ObjectId, not_null

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger("campuslane.auth")
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/admin/login", auto_error=False)

STUDENT_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _bcrypt_safe(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	password_bytes = password.encode('utf-8')
	if len(password_bytes) > 72:
		password_bytes = password_bytes[:72]
	return password_bytes.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_bcrypt_safe(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(_bcrypt_safe(plain_password), hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
	to_encode.update({"exp": expire})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_user_token(user: User) -> str:
	return create_access_token({"userId": user.id, "role": user.role})


def create_admin_token(admin: Admin) -> str:
	return create_access_token({"adminId": admin.id})


def _decode(token: str) -> Optional[Dict[str, Any]]:
	try:
		return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		return None


class Principal:
	"""Whoever is calling: a platform user or an admin."""

	def __init__(self, user: Optional[User] = None, admin: Optional[Admin] = None) -> None:
		self.user = user
		self.admin = admin

	@property
	def is_admin(self) -> bool:
		return self.admin is not None

	@property
	def id(self) -> str:
		return self.admin.id if self.admin is not None else self.user.id

	@property
	def role(self) -> str:
		return "admin" if self.admin is not None else self.user.role


def _load_user(db: Session, payload: Optional[Dict[str, Any]]) -> Optional[User]:
	if not payload or not payload.get("userId"):
		return None
	user = db.get(User, payload["userId"])
	if user is None or user.is_deleted:
		return None
	return user


def _load_admin(db: Session, payload: Optional[Dict[str, Any]]) -> Optional[Admin]:
	if not payload or not payload.get("adminId"):
		return None
	return db.get(Admin, payload["adminId"])


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	if not token:
		raise AuthenticationError("No token provided")
	payload = _decode(token)
	if not payload or not payload.get("userId"):
		raise AuthenticationError("Invalid token")
	user = _load_user(db, payload)
	if user is None:
		raise AuthenticationError("User not found")
	return user


def get_current_admin(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Admin:
	if not token:
		raise AuthenticationError("No token provided")
	payload = _decode(token)
	if not payload or not payload.get("adminId"):
		raise AuthenticationError("Invalid token")
	admin = _load_admin(db, payload)
	if admin is None:
		raise AuthenticationError("Admin not found")
	return admin


def get_principal(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Principal:
	if not token:
		raise AuthenticationError("No token provided")
	payload = _decode(token)
	user = _load_user(db, payload)
	if user is not None:
		return Principal(user=user)
	admin = _load_admin(db, payload)
	if admin is not None:
		return Principal(admin=admin)
	raise AuthenticationError("Invalid token")


def get_optional_principal(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Optional[Principal]:
	if not token:
		return None
	return get_principal(token, db)


def require_role(*roles: str):
	def dependency(user: User = Depends(get_current_user)) -> User:
		if user.role not in roles:
			raise AuthorizationError("Insufficient permissions")
		return user
	return dependency


def require_teacher_approval(user: User = Depends(get_current_user)) -> User:
	if user.role == "teacher" and user.approval_status != "approved":
		raise AuthorizationError("Teacher approval required")
	return user


def generate_student_code(db: Session) -> str:
	while True:
		code = "".join(secrets.choice(STUDENT_CODE_ALPHABET) for _ in range(6))
		if db.query(User.id).filter(User.student_code == code).first() is None:
			return code


class GoogleSignInRequest(CamelModel):
	access_token: Optional[str] = None
	id_token: Optional[str] = None
	role: Literal["student", "teacher", "parent"] = "student"
	name: Optional[str] = Field(default=None, min_length=1, max_length=128)
	age: Optional[int] = Field(default=None, ge=5, le=18)
	phone: Optional[str] = None
	city: Optional[str] = None
	state: Optional[str] = None
	country: Optional[str] = None
	pincode: Optional[str] = None
	class_level: Optional[ObjectId] = None
	class_other: Optional[str] = None

	@model_validator(mode="after")
	def _check(self):
		if not (self.access_token or self.id_token):
			raise ValueError("Google access token is required")
		if self.role == "student":
			if self.age is None:
				raise ValueError("Age is required for students")
			if not self.class_level and not self.class_other:
				raise ValueError("Class level is required for students")
		return self


class AdminLoginRequest(CamelModel):
	email: str = Field(min_length=3, max_length=256)
	password: str = Field(min_length=1)


class UpdateProfileRequest(CamelModel):
	name: Optional[str] = Field(default=None, min_length=1, max_length=128)
	phone: Optional[str] = None
	city: Optional[str] = None
	state: Optional[str] = None
	country: Optional[str] = None
	pincode: Optional[str] = None
	age: Optional[int] = Field(default=None, ge=5, le=18)
	class_level: Optional[ObjectId] = None
	class_other: Optional[str] = None

	_not_null = not_null("name")


def _check_class(db: Session, class_id: Optional[str]) -> None:
	if class_id:
		cls = db.get(SchoolClass, class_id)
		if cls is None or cls.is_deleted:
			raise ValidationError("Class not found")


@router.post("/google", dependencies=[Depends(auth_limiter)])
async def google_sign_in(
	req: GoogleSignInRequest,
	db: Session = Depends(get_db),
	google: GoogleClient = Depends(get_google_client),
):
	profile = await google.fetch_userinfo(req.access_token or req.id_token)
	google_id = str(profile["sub"])
	email = str(profile["email"]).lower()

	user = db.query(User).filter((User.email == email) | (User.google_id == google_id)).first()
	if user is not None:
		if user.is_deleted:
			raise AuthenticationError("Account has been deactivated")
		if not user.google_id:
			user.google_id = google_id
			db.commit()
			db.refresh(user)
		logger.info("google sign-in for existing user %s", user.id)
		return {"success": True, "data": {"token": create_user_token(user), "user": user.to_dict()}}

	_check_class(db, req.class_level)
	user = User(
		name=req.name or profile.get("name") or email.split("@")[0],
		email=email,
		google_id=google_id,
		role=req.role,
		phone=req.phone,
		city=req.city,
		state=req.state,
		country=req.country,
		pincode=req.pincode,
	)
	if req.role == "student":
		user.age = req.age
		user.class_level_id = req.class_level
		user.class_other = req.class_other
		user.student_code = generate_student_code(db)
	elif req.role == "teacher":
		user.approval_status = "pending"
	db.add(user)
	db.flush()
	if req.role == "teacher":
		notify_teacher_signup(db, user)
	db.commit()
	db.refresh(user)
	logger.info("created %s %s from google sign-in", user.role, user.id)
	return {"success": True, "data": {"token": create_user_token(user), "user": user.to_dict()}}


@router.post("/admin/login", dependencies=[Depends(auth_limiter)])
async def admin_login(req: AdminLoginRequest, db: Session = Depends(get_db)):
	admin = db.query(Admin).filter(Admin.email == req.email.strip().lower()).first()
	if admin is None or not verify_password(req.password, admin.password_hash):
		raise AuthenticationError("Invalid email or password")
	return {
		"success": True,
		"data": {
			"token": create_admin_token(admin),
			"admin": {"id": admin.id, "email": admin.email, "name": admin.name},
		},
	}


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
	return {"success": True, "data": user.to_dict()}


@router.patch("/me")
async def update_me(req: UpdateProfileRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	changes = req.model_dump(exclude_unset=True)
	if "class_level" in changes:
		_check_class(db, changes["class_level"])
		changes["class_level_id"] = changes.pop("class_level")
	for field, value in changes.items():
		setattr(user, field, value)
	db.commit()
	db.refresh(user)
	return {"success": True, "data": user.to_dict()}
