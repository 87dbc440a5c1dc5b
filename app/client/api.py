import logging
from typing import Any, Protocol

import httpx

from app.core.config import get_settings
from app.modules.forms.service import ProgressSnapshot


logger = logging.getLogger("app.client")
settings = get_settings()


class FormApiError(Exception):
    def __init__(self, status_code: int, error: str):
        self.status_code = status_code
        self.error = error
        super().__init__(f"{status_code}: {error}")


class ProgressBackend(Protocol):
    async def load_progress(self) -> ProgressSnapshot | None: ...

    async def save_progress(self, current_step: int, form_data: dict[str, Any]) -> None: ...


class FormApiClient:
    """Talks to the forms API on behalf of one signed-in user."""

    def __init__(
        self,
        base_url: str,
        session_token: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            cookies={settings.session_cookie_name: session_token},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "FormApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise FormApiError(0, f"transport error: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400 or not body.get("success"):
            raise FormApiError(response.status_code, body.get("error") or "request failed")
        return body

    async def load_progress(self) -> ProgressSnapshot | None:
        body = await self._request("GET", "/api/forms/progress")
        data = body.get("data")
        if not data:
            return None
        return ProgressSnapshot(current_step=data["currentStep"], form_data=data.get("formData") or {})

    async def save_progress(self, current_step: int, form_data: dict[str, Any]) -> None:
        await self._request(
            "POST",
            "/api/forms/save",
            json={"currentStep": current_step, "formData": form_data},
        )

    async def submit(self, form_data: dict[str, Any]) -> str:
        body = await self._request("POST", "/api/forms/submit", json=form_data)
        return body["data"]["submissionId"]
