"""Student progress dashboard.

Builds the overall / per-type / per-class summary plus weekly and monthly
activity buckets for one student. Rows are loaded once and folded in
Python; bucket boundaries are cut in ``settings.progress_timezone``.
"""
from __future__ import annotations
import math
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo
from sqlalchemy.orm import Session, joinedload
from .models import Content, Progress
from .settings import settings


WEEKLY_BUCKETS = 4
MONTHLY_BUCKETS = 12


def round1(value: float) -> float:
	# Half-up to one decimal place
	return math.floor(value * 10 + 0.5) / 10


def percentage(completed: int, total: int) -> float:
	return round1(completed / total * 100) if total else 0


def _parse_ts(value) -> Optional[datetime]:
	if value is None:
		return None
	if isinstance(value, datetime):
		return value
	try:
		parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
	except ValueError:
		return None
	if parsed.tzinfo is not None:
		parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
	return parsed


def last_watched_at(row: Progress) -> Optional[datetime]:
	if row.completed_at:
		return row.completed_at
	sessions = row.watch_sessions or []
	if sessions:
		started = _parse_ts(sessions[-1].get("startedAt"))
		if started:
			return started
	return row.updated_at or row.created_at


def _iso(dt: Optional[datetime]) -> Optional[str]:
	if dt is None:
		return None
	return dt.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")


def week_start(dt: datetime, tz: ZoneInfo) -> datetime:
	"""Sunday 00:00 local time of the week containing dt, returned as naive UTC."""
	local = dt.replace(tzinfo=timezone.utc).astimezone(tz)
	days_back = (local.weekday() + 1) % 7
	start = (local - timedelta(days=days_back)).replace(hour=0, minute=0, second=0, microsecond=0)
	start = start.replace(tzinfo=None).replace(tzinfo=tz)
	return start.astimezone(timezone.utc).replace(tzinfo=None)


def month_start(dt: datetime, tz: ZoneInfo) -> datetime:
	local = dt.replace(tzinfo=timezone.utc).astimezone(tz)
	start = datetime(local.year, local.month, 1, tzinfo=tz)
	return start.astimezone(timezone.utc).replace(tzinfo=None)


def _content_field(row: Progress, name: str):
	if row.content is not None:
		return getattr(row.content, name)
	snapshot = row.content_snapshot or {}
	return snapshot.get(name)


def _buckets(rows: List[Progress], cut, key: str, limit: int) -> List[Dict[str, Any]]:
	grouped: Dict[datetime, Dict[str, Any]] = {}
	for row in rows:
		when = last_watched_at(row)
		if when is None:
			continue
		start = cut(when)
		bucket = grouped.setdefault(start, {"completedCount": 0, "timeSpentSeconds": 0})
		if row.status == "completed":
			bucket["completedCount"] += 1
		if _content_field(row, "type") == "video":
			bucket["timeSpentSeconds"] += row.time_spent or 0
	out = []
	for start in sorted(grouped, reverse=True)[:limit]:
		out.append({key: _iso(start), **grouped[start]})
	return out


def _class_tree(rows: List[Progress]) -> List[Dict[str, Any]]:
	tree: "OrderedDict[Any, Dict[str, Any]]" = OrderedDict()
	for row in rows:
		content = row.content
		cls = content.school_class if content else None
		subj = content.subject if content else None
		chap = content.chapter if content else None
		done = 1 if row.status == "completed" else 0

		c = tree.setdefault(cls.id if cls else None, {
			"classId": cls.id if cls else None,
			"title": cls.name if cls else None,
			"total": 0,
			"completed": 0,
			"subjects": OrderedDict(),
		})
		s = c["subjects"].setdefault(subj.id if subj else None, {
			"subjectId": subj.id if subj else None,
			"title": subj.name if subj else None,
			"total": 0,
			"completed": 0,
			"chapters": OrderedDict(),
		})
		ch = s["chapters"].setdefault(chap.id if chap else None, {
			"chapterId": chap.id if chap else None,
			"title": chap.name if chap else None,
			"total": 0,
			"completed": 0,
		})
		for node in (c, s, ch):
			node["total"] += 1
			node["completed"] += done

	out = []
	for c in tree.values():
		subjects = []
		for s in c["subjects"].values():
			chapters = [
				{**ch, "percentage": percentage(ch["completed"], ch["total"])}
				for ch in s["chapters"].values()
			]
			subjects.append({**s, "percentage": percentage(s["completed"], s["total"]), "chapters": chapters})
		out.append({**c, "percentage": percentage(c["completed"], c["total"]), "subjects": subjects})
	return out


def student_progress_summary(
	db: Session,
	student_id: str,
	*,
	recent_limit: int = 10,
	watch_limit: int = 50,
	class_id: Optional[str] = None,
	subject_id: Optional[str] = None,
	tz_name: Optional[str] = None,
) -> Dict[str, Any]:
	tz = ZoneInfo(tz_name or settings.progress_timezone)
	query = (
		db.query(Progress)
		.options(
			joinedload(Progress.content).joinedload(Content.school_class),
			joinedload(Progress.content).joinedload(Content.subject),
			joinedload(Progress.content).joinedload(Content.chapter),
		)
		.filter(Progress.student_id == student_id)
	)
	rows = query.all()
	if class_id:
		rows = [r for r in rows if r.content is not None and r.content.class_id == class_id]
	if subject_id:
		rows = [r for r in rows if r.content is not None and r.content.subject_id == subject_id]

	by_type = {
		"video": {"total": 0, "completed": 0, "timeSpent": 0, "sessions": 0},
		"file": {"total": 0, "completed": 0},
		"image": {"total": 0, "completed": 0},
		"quiz": {"total": 0, "completed": 0, "avgScore": 0},
	}
	counts = {"completed": 0, "in_progress": 0, "not_started": 0}
	quiz_scores: List[float] = []
	for row in rows:
		if row.status in counts:
			counts[row.status] += 1
		kind = _content_field(row, "type")
		if kind not in by_type:
			continue
		by_type[kind]["total"] += 1
		if row.status == "completed":
			by_type[kind]["completed"] += 1
		if kind == "video":
			by_type["video"]["timeSpent"] += row.time_spent or 0
			by_type["video"]["sessions"] += len(row.watch_sessions or [])
		elif kind == "quiz" and row.quiz_score is not None:
			quiz_scores.append(row.quiz_score)
	if quiz_scores:
		by_type["quiz"]["avgScore"] = sum(quiz_scores) / len(quiz_scores)

	total = len(rows)
	overall = {
		"totalContents": total,
		"completed": counts["completed"],
		"inProgress": counts["in_progress"],
		"notStarted": counts["not_started"],
		"percentage": percentage(counts["completed"], total),
	}

	recent_rows = sorted(
		rows,
		key=lambda r: (r.completed_at or datetime.min, r.updated_at or datetime.min),
		reverse=True,
	)[:recent_limit]
	recent = [
		{
			"_id": r.id,
			"contentId": r.content.id if r.content else None,
			"title": _content_field(r, "title"),
			"type": _content_field(r, "type"),
			"image": r.content.thumbnail_key if r.content else None,
			"completedAt": r.completed_at,
			"updatedAt": r.updated_at,
			"quizScore": r.quiz_score,
			"lastWatchedAt": last_watched_at(r),
		}
		for r in recent_rows
	]

	watched = [
		r for r in rows
		if _content_field(r, "type") == "video" and ((r.time_spent or 0) > 0 or r.watch_sessions)
	]
	watched.sort(key=lambda r: last_watched_at(r) or datetime.min, reverse=True)
	watch_history = []
	for r in watched[:watch_limit]:
		progress = r.progress_percent
		if progress is None:
			progress = 100 if r.status == "completed" else 0
		watch_history.append({
			"_id": r.id,
			"contentId": r.content.id if r.content else None,
			"image": r.content.thumbnail_key if r.content else None,
			"title": _content_field(r, "title"),
			"durationSeconds": _content_field(r, "duration"),
			"watchedSeconds": r.time_spent or 0,
			"progress": round1(progress),
			"lastWatchedAt": last_watched_at(r),
		})

	return {
		"overall": overall,
		"byType": by_type,
		"weekly": _buckets(rows, lambda dt: week_start(dt, tz), "weekStart", WEEKLY_BUCKETS),
		"monthly": _buckets(rows, lambda dt: month_start(dt, tz), "monthStart", MONTHLY_BUCKETS),
		"classes": _class_tree(rows),
		"recent": recent,
		"watchHistory": watch_history,
	}
