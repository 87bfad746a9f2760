from datetime import datetime

from fastapi import APIRouter

from ..settings import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
	return {
		"success": True,
		"message": "Campus Lane API is running",
		"timestamp": datetime.utcnow().isoformat() + "Z",
		"environment": settings.env,
	}
