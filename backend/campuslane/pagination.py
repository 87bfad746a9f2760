from __future__ import annotations
import math
from typing import Any, Dict, List, Optional
from fastapi import Query


class PageParams:
	"""Common list query parameters, used as a dependency."""

	def __init__(
		self,
		page: int = Query(default=1),
		limit: int = Query(default=20),
		sort: Optional[str] = Query(default=None),
		dir: str = Query(default="asc", pattern="^(asc|desc)$"),
		search: Optional[str] = Query(default=None),
		include_deleted: Optional[str] = Query(default=None, alias="includeDeleted"),
	) -> None:
		self.page = max(page, 1)
		self.limit = min(max(limit, 1), 100)
		self.sort = sort
		self.dir = dir
		self.search = search.strip() if search and search.strip() else None
		self.include_deleted = include_deleted == "true"

	@property
	def skip(self) -> int:
		return (self.page - 1) * self.limit

	def order(self, column):
		return column.desc() if self.dir == "desc" else column.asc()


def paginate(data: List[Any], total: int, page: int, limit: int) -> Dict[str, Any]:
	pages = math.ceil(total / limit) if limit else 0
	return {
		"data": data,
		"pagination": {
			"page": page,
			"limit": limit,
			"total": total,
			"pages": pages,
			"hasNext": page < pages,
			"hasPrev": page > 1,
		},
	}


def page_query(query, params: PageParams):
	"""Count and slice a SQLAlchemy query; returns (rows, total)."""
	total = query.count()
	rows = query.offset(params.skip).limit(params.limit).all()
	return rows, total
