from typing import Generic, Iterable, Optional, Type, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel

from app.models.interaction import (
    CommentCreate,
    InteractionList,
    InteractionResult,
    InteractionSnapshot,
)
from config import settings

T = TypeVar("T", bound=BaseModel)


class ApiResponse(BaseModel, Generic[T]):
    """Success or failure of one call; transport errors never escape as exceptions."""
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    data: Optional[T] = None


class InteractionApiClient:
    """httpx client for the interaction service, bound to one user."""

    def __init__(
            self,
            user_id: str,
            base_url: Optional[str] = None,
            timeout: Optional[float] = None,
            transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.user_id = user_id
        self.client = httpx.AsyncClient(
            base_url=base_url or settings.INTERACTION_API_BASE_URL,
            timeout=timeout if timeout is not None else settings.INTERACTION_API_TIMEOUT,
            headers={"X-User-Id": user_id},
            transport=transport,
        )

    async def _request(self, method: str, url: str, model: Type[T], **kwargs) -> ApiResponse[T]:
        """
        Send one request and wrap the outcome; never raises on network or HTTP errors.

        Args:
            method: HTTP method
            url: Path relative to the service base url
            model: Pydantic model the body is validated into
            **kwargs: Passed to httpx (params, json)

        Returns:
            ApiResponse with `data` set only when `ok`
        """
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed for user {self.user_id}: {e!r}")
            return ApiResponse[model](ok=False, error=str(e) or e.__class__.__name__)

        if response.is_error:
            try:
                detail = response.json().get("detail")
            except (ValueError, AttributeError):
                detail = response.text
            logger.warning(f"{method} {url} -> {response.status_code}: {detail}")
            return ApiResponse[model](ok=False, status_code=response.status_code, error=str(detail))

        try:
            data = model.model_validate(response.json())
        except ValueError as e:
            logger.error(f"{method} {url} returned an unexpected body: {e}")
            return ApiResponse[model](ok=False, status_code=response.status_code, error="invalid response body")

        return ApiResponse[model](ok=True, status_code=response.status_code, data=data)

    async def create_flag(self, post_id: int, interaction_type: str, post_type: str = "post") -> ApiResponse[InteractionResult]:
        return await self._request("POST", f"/interactions/{post_type}/{post_id}/{interaction_type}", InteractionResult)

    async def delete_flag(self, post_id: int, interaction_type: str, post_type: str = "post") -> ApiResponse[InteractionResult]:
        return await self._request("DELETE", f"/interactions/{post_type}/{post_id}/{interaction_type}", InteractionResult)

    async def like_comment(self, comment_id: int) -> ApiResponse[InteractionResult]:
        return await self._request("POST", f"/interactions/comments/{comment_id}/like", InteractionResult)

    async def unlike_comment(self, comment_id: int) -> ApiResponse[InteractionResult]:
        return await self._request("DELETE", f"/interactions/comments/{comment_id}/like", InteractionResult)

    async def create_comment(self, post_id: int, content: str, parent_id: Optional[int] = None) -> ApiResponse[InteractionResult]:
        body = CommentCreate(content=content, parent_id=parent_id).model_dump(by_alias=True, exclude_none=True)
        return await self._request("POST", f"/interactions/posts/{post_id}/comments", InteractionResult, json=body)

    async def delete_comment(self, comment_id: int) -> ApiResponse[InteractionResult]:
        return await self._request("DELETE", f"/interactions/comments/{comment_id}", InteractionResult)

    async def list_comments(self, post_id: int) -> ApiResponse[InteractionList]:
        return await self._request("GET", f"/interactions/posts/{post_id}/comments", InteractionList)

    async def fetch_snapshot(self, post_ids: Iterable[int]) -> ApiResponse[InteractionSnapshot]:
        return await self._request(
            "GET", "/interactions/snapshot", InteractionSnapshot,
            params={"postIds": [int(p) for p in post_ids]},
        )

    async def list_my_interactions(self, post_ids: Optional[Iterable[int]] = None) -> ApiResponse[InteractionList]:
        params = {"postIds": [int(p) for p in post_ids]} if post_ids is not None else None
        return await self._request("GET", "/interactions/me", InteractionList, params=params)

    async def aclose(self) -> None:
        await self.client.aclose()
