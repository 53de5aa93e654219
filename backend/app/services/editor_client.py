"""HTTP client used by the question editor.

Wraps the question endpoints of the TestDesk API so an AutosavePipeline can be
wired to a running server:

    client = EditorClient("https://api.example.com/v1", token)
    save, delete = client.autosave_callables(test_id)
    pipeline = AutosavePipeline(save, delete)
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)


class EditorClient:
    """Async client for question reads and writes.

    Attributes:
        base_url: API root including the version prefix
        timeout: HTTP request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize EditorClient.

        Args:
            base_url: API root, e.g. "https://api.example.com/v1"
            token: Bearer token of the editing user
            timeout: HTTP request timeout in seconds (default: 10.0)
            transport: Optional transport, e.g. httpx.ASGITransport in tests
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._get_headers(token),
            timeout=timeout,
            transport=transport,
        )

    @staticmethod
    def _get_headers(token: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

    async def __aenter__(self) -> "EditorClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_questions(self, test_id: str) -> list:
        response = await self._client.get(f"/tests/{test_id}/questions")
        response.raise_for_status()
        return response.json()

    async def update_question(
        self, test_id: str, question_id: str, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """PATCH a question and return the stored question.

        Raises:
            httpx.HTTPStatusError: For any non-2xx response
        """
        response = await self._client.patch(
            f"/tests/{test_id}/questions/{question_id}", json=payload
        )
        if response.is_error:
            logger.debug(
                f"Question update rejected: {response.status_code} {response.text}"
            )
        response.raise_for_status()
        return response.json()

    async def delete_question(self, test_id: str, question_id: str) -> None:
        """DELETE a question. Deleting an already-deleted question succeeds."""
        response = await self._client.delete(
            f"/tests/{test_id}/questions/{question_id}"
        )
        response.raise_for_status()

    def autosave_callables(
        self, test_id: str
    ) -> Tuple[
        Callable[[str, Dict[str, Any]], Awaitable[Dict[str, Any]]],
        Callable[[str], Awaitable[None]],
    ]:
        """Return (save, delete) callables bound to one test."""

        async def save(question_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
            return await self.update_question(test_id, question_id, payload)

        async def delete(question_id: str) -> None:
            await self.delete_question(test_id, question_id)

        return save, delete
