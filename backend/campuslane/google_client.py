from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, Optional
from .errors import AuthenticationError
from .settings import settings


logger = logging.getLogger("campuslane.google")


class GoogleClient:
	def __init__(self, *, userinfo_url: Optional[str] = None, timeout: float = 10) -> None:
		self.userinfo_url = userinfo_url or settings.google_userinfo_url
		self._client = httpx.AsyncClient(timeout=timeout)

	async def fetch_userinfo(self, access_token: str) -> Dict[str, Any]:
		"""Resolve a Google OAuth access token to its profile ({sub, email, name, ...})."""
		try:
			resp = await self._client.get(
				self.userinfo_url,
				headers={"Authorization": f"Bearer {access_token}"},
			)
		except httpx.HTTPError as e:
			logger.warning("google userinfo request failed: %s", e)
			raise AuthenticationError("Invalid Google token")
		if resp.status_code != 200:
			logger.info("google userinfo rejected token: %s", resp.status_code)
			raise AuthenticationError("Invalid Google token")
		data = resp.json()
		if not data.get("sub") or not data.get("email"):
			raise AuthenticationError("Invalid Google token")
		return data

	async def aclose(self) -> None:
		await self._client.aclose()


_client: Optional[GoogleClient] = None


def get_google_client() -> GoogleClient:
	global _client
	if _client is None:
		_client = GoogleClient()
	return _client


async def close_google_client() -> None:
	global _client
	if _client is not None:
		await _client.aclose()
		_client = None
