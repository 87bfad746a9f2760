"""HTTP errors raised by routers and services.

Every error is an ``HTTPException`` so FastAPI routes it through the
envelope handlers registered in ``main``.
"""
from __future__ import annotations

from fastapi import HTTPException


class ValidationError(HTTPException):
	def __init__(self, message: str = "Validation failed") -> None:
		super().__init__(status_code=400, detail=message)


class AuthenticationError(HTTPException):
	def __init__(self, message: str = "Authentication required") -> None:
		super().__init__(status_code=401, detail=message)


class AuthorizationError(HTTPException):
	def __init__(self, message: str = "Insufficient permissions") -> None:
		super().__init__(status_code=403, detail=message)


class NotFoundError(HTTPException):
	def __init__(self, message: str = "Resource not found") -> None:
		super().__init__(status_code=404, detail=message)


class ConflictError(HTTPException):
	def __init__(self, message: str = "Resource already exists") -> None:
		super().__init__(status_code=409, detail=message)


class RateLimitError(HTTPException):
	def __init__(self, message: str, retry_after: int) -> None:
		super().__init__(status_code=429, detail=message, headers={"Retry-After": str(retry_after)})
