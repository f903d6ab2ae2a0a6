"""HTTP client for the task endpoints."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from taskboard.board.cards import TaskCard
from taskboard.core.exceptions import Forbidden, InvalidInput, NotFound, TaskBoardError, TransientFailure

logger = logging.getLogger(__name__)


def error_for_status(status_code: int, detail: str) -> TaskBoardError:
    if status_code in (401, 403):
        return Forbidden(detail)
    if status_code == 404:
        return NotFound(detail)
    if status_code >= 500:
        return TransientFailure(detail)
    return InvalidInput(detail)


def _detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    if isinstance(detail, list):
        # FastAPI validation errors
        detail = "; ".join(str(item.get("msg", item)) for item in detail if isinstance(item, dict)) or None
    return detail or f"Request failed with status {response.status_code}"


def _encode(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: getattr(value, "value", value) for key, value in fields.items()}


class TaskBoardClient:
    """Async client returning TaskCard values and raising board errors."""

    def __init__(
        self,
        base_url: str = "",
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "TaskBoardClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransientFailure(f"Could not reach the server: {exc}") from exc
        if response.is_success:
            return response
        raise error_for_status(response.status_code, _detail(response))

    async def list_tasks(self, project_id: int) -> List[TaskCard]:
        response = await self._request("GET", f"/projects/{project_id}/tasks")
        return [TaskCard.from_payload(item) for item in response.json()]

    async def create_task(self, project_id: int, title: str, **fields) -> TaskCard:
        payload = _encode({"title": title, **fields})
        response = await self._request("POST", f"/projects/{project_id}/tasks", json=payload)
        return TaskCard.from_payload(response.json())

    async def update_task(self, project_id: int, task_id: int, **changes) -> TaskCard:
        response = await self._request("PATCH", f"/projects/{project_id}/tasks/{task_id}", json=_encode(changes))
        return TaskCard.from_payload(response.json())

    async def delete_task(self, project_id: int, task_id: int) -> None:
        await self._request("DELETE", f"/projects/{project_id}/tasks/{task_id}")
