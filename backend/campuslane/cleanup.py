from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import Notification
from .settings import settings


logger = logging.getLogger("campuslane.cleanup")


def purge_deleted_notifications(db: Session, retention_days: Optional[int] = None) -> int:
	days = settings.notification_retention_days if retention_days is None else retention_days
	threshold = datetime.utcnow() - timedelta(days=days)
	# Only soft-deleted rows past retention are removed; live notifications are kept forever
	res = db.execute(
		delete(Notification).where(
			Notification.is_deleted.is_(True),
			Notification.deleted_at < threshold,
		)
	)
	db.commit()
	removed = res.rowcount or 0
	if removed:
		logger.info("purged %d deleted notifications older than %d days", removed, days)
	return removed
