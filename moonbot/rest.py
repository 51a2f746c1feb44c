from typing import Any, Dict, Optional

import aiohttp

DEFAULT_TIMEOUT_SECONDS = 10.0


class ApiError(Exception):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class JsonApiClient:
    """Thin aiohttp wrapper shared by the external API clients.

    Requests are attempted once; failures surface as `ApiError` so the caller
    can log them and give up until the next scheduled run.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self._session = session
        self._owns_session = session is None
        self.timeout = timeout

    async def close(self):
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            async with self._session.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise ApiError(
                        f"{method} {url} returned {resp.status}: {body[:200]}",
                        status=resp.status,
                    )
                # Some feeds answer with text/plain bodies holding JSON.
                return await resp.json(content_type=None)
        except ApiError:
            raise
        except Exception as exc:
            raise ApiError(
                f"Failed request {url}: {exc}", status=getattr(exc, "status", None)
            ) from exc
