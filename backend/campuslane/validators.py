from __future__ import annotations
import re
from typing import Annotated
from pydantic import AfterValidator, BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


_ID_RE = re.compile(r"^[0-9a-f]{24}$")


def check_object_id(value: str) -> str:
	if not _ID_RE.match(value or ""):
		raise ValueError("Invalid ID format")
	return value


ObjectId = Annotated[str, AfterValidator(check_object_id)]


class CamelModel(BaseModel):
	"""Request body base: camelCase on the wire, snake_case attributes."""
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def not_null(*fields: str):
	"""Model validator for partial updates: the named fields may be omitted but not sent as null."""

	def check(self):
		for name in fields:
			if name in self.model_fields_set and getattr(self, name) is None:
				raise ValueError(f"{to_camel(name)} cannot be null")
		return self

	return model_validator(mode="after")(check)
