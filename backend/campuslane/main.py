import asyncio
import logging
import time

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .db import SessionLocal, init_db
from .cleanup import purge_deleted_notifications
from .errors import RateLimitError
from .ratelimit import general_limiter
from .settings import settings
from .google_client import close_google_client
from .routers import health, auth, admin, analytics
from .routers import classes, content, bookmarks, progress, links, notifications
from .routers import schools, categories, products, cart, orders, wishlist, reviews

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("campuslane")

API_PREFIX = "/api/v1"

app = FastAPI(title="Campus Lane API", version="1.0.0", docs_url="/api-docs")

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
	CORSMiddleware,
	allow_origins=settings.cors_origin_list,
	allow_credentials=True,
	allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
	allow_headers=["Content-Type", "Authorization", "Idempotency-Key"],
)

SECURITY_HEADERS = {
	"X-Content-Type-Options": "nosniff",
	"X-Frame-Options": "SAMEORIGIN",
	"Referrer-Policy": "no-referrer",
	"X-XSS-Protection": "0",
	"Cross-Origin-Resource-Policy": "cross-origin",
}


def _error(status_code: int, message, headers=None) -> JSONResponse:
	return JSONResponse(
		status_code=status_code,
		content={"success": False, "error": {"message": message}},
		headers=headers,
	)


@app.middleware("http")
async def security_headers(request: Request, call_next):
	response = await call_next(request)
	for name, value in SECURITY_HEADERS.items():
		response.headers.setdefault(name, value)
	return response


@app.middleware("http")
async def general_rate_limit(request: Request, call_next):
	# Middleware runs outside the exception handlers, so answer directly
	try:
		general_limiter.check(request)
	except RateLimitError as exc:
		return _error(exc.status_code, exc.detail, exc.headers)
	return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
	started = time.perf_counter()
	response = await call_next(request)
	elapsed = (time.perf_counter() - started) * 1000
	logger.info("%s %s %d %.1fms", request.method, request.url.path, response.status_code, elapsed)
	return response


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
	message = exc.detail
	if exc.status_code == 404 and message == "Not Found":
		message = f"Route {request.url.path} not found"
	return _error(exc.status_code, message, getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
	messages = []
	for err in exc.errors():
		msg = str(err.get("msg", "Invalid value"))
		if msg.startswith("Value error, "):
			msg = msg[len("Value error, "):]
		messages.append(msg)
	return _error(400, ", ".join(messages) or "Validation failed")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
	logger.exception("unhandled error on %s %s", request.method, request.url.path)
	message = str(exc) if settings.debug_errors else "Internal Server Error"
	return JSONResponse(status_code=500, content=jsonable_encoder({"success": False, "error": {"message": message}}))


app.include_router(health.router, prefix=API_PREFIX)
app.include_router(auth.router, prefix=API_PREFIX)
app.include_router(admin.router, prefix=API_PREFIX)
app.include_router(classes.router, prefix=API_PREFIX)
app.include_router(content.router, prefix=API_PREFIX)
app.include_router(bookmarks.router, prefix=API_PREFIX)
app.include_router(progress.router, prefix=API_PREFIX)
app.include_router(links.router, prefix=API_PREFIX + "/parent")
app.include_router(links.router, prefix=API_PREFIX + "/student")
app.include_router(notifications.router, prefix=API_PREFIX)
app.include_router(analytics.router, prefix=API_PREFIX)
app.include_router(schools.router, prefix=API_PREFIX)
app.include_router(categories.router, prefix=API_PREFIX)
app.include_router(products.router, prefix=API_PREFIX)
app.include_router(cart.router, prefix=API_PREFIX)
app.include_router(orders.router, prefix=API_PREFIX)
app.include_router(orders.admin_router, prefix=API_PREFIX)
app.include_router(wishlist.router, prefix=API_PREFIX)
app.include_router(reviews.router, prefix=API_PREFIX)


def _purge_once() -> None:
	db = SessionLocal()
	try:
		purge_deleted_notifications(db)
	except Exception:
		logger.exception("notification cleanup failed")
	finally:
		db.close()


async def _cleanup_watcher():
	# Startup already ran one pass; repeat daily
	while True:
		await asyncio.sleep(24 * 60 * 60)
		_purge_once()


@app.on_event("startup")
async def startup_event():
	init_db()
	_purge_once()
	app.state.cleanup_task = asyncio.create_task(_cleanup_watcher())


@app.on_event("shutdown")
async def shutdown_event():
	task = getattr(app.state, "cleanup_task", None)
	if task is not None:
		task.cancel()
	await close_google_client()
