from __future__ import annotations

import asyncio
import enum
import json
import random
from dataclasses import dataclass
from typing import Any

import aiohttp

RETRIABLE_STATUSES = frozenset({408, 409, 429, 500, 502, 503, 504})


class ProviderErrorKind(str, enum.Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    STATUS = "status"
    MALFORMED = "malformed"
    EMPTY = "empty"
    BLOCKED = "blocked"


class ProviderError(RuntimeError):
    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        *,
        detail: str = "",
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.detail = detail
        self.status = status

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


@dataclass(slots=True, frozen=True)
class GenerationParams:
    max_tokens: int
    temperature: float | None = None


def _error_detail(text: str, limit: int = 400) -> str:
    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error.strip():
            return error.strip()
    cleaned = (text or "").strip()
    return cleaned[:limit]


class CompletionProvider:
    """Uniform chat-completion contract over one aiohttp session per backend."""

    backend_name = "provider"

    def __init__(self, *, model: str, timeout_seconds: int = 45, retries: int = 2) -> None:
        self.model = (model or "").strip()
        if not self.model:
            raise ValueError(f"{self.backend_name} model cannot be empty")
        self.timeout = aiohttp.ClientTimeout(total=max(5, int(timeout_seconds)))
        self.retries = max(1, int(retries))
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def _endpoint(self) -> str:
        raise NotImplementedError

    def _build_payload(self, messages: list[dict[str, str]], params: GenerationParams) -> dict[str, Any]:
        raise NotImplementedError

    def _extract_text(self, data: dict[str, Any]) -> str:
        raise NotImplementedError

    def _decode(self, text: str) -> dict[str, Any]:
        try:
            parsed = json.loads(text)
        except ValueError as exc:
            raise ProviderError(
                ProviderErrorKind.MALFORMED,
                f"{self.backend_name} returned invalid JSON",
                detail=str(exc),
            ) from exc
        if not isinstance(parsed, dict):
            raise ProviderError(ProviderErrorKind.MALFORMED, f"{self.backend_name} returned non-object JSON response")
        return parsed

    async def _request(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self._session is None or self._session.closed:
            await self.start()
        assert self._session is not None

        url = self._endpoint()
        last_error: ProviderError | None = None
        for attempt in range(1, self.retries + 1):
            try:
                async with self._session.post(url, json=payload, headers=self._headers()) as response:
                    text = await response.text()
                    if response.status == 200:
                        return self._decode(text)
                    error = ProviderError(
                        ProviderErrorKind.STATUS,
                        f"{self.backend_name} error {response.status}",
                        detail=_error_detail(text),
                        status=response.status,
                    )
                    if response.status not in RETRIABLE_STATUSES:
                        raise error
                    last_error = error
            except asyncio.CancelledError:
                raise
            except ProviderError:
                raise
            except asyncio.TimeoutError as exc:
                last_error = ProviderError(
                    ProviderErrorKind.TIMEOUT,
                    f"{self.backend_name} call timed out",
                    detail=str(exc) or f"no response within {self.timeout.total}s",
                )
            except aiohttp.ClientError as exc:
                last_error = ProviderError(
                    ProviderErrorKind.NETWORK,
                    f"Network error calling {self.backend_name}",
                    detail=str(exc),
                )

            if attempt < self.retries:
                await asyncio.sleep(min(4.0, 0.35 * attempt + random.random() * 0.2))

        if last_error is not None:
            raise last_error
        raise ProviderError(ProviderErrorKind.NETWORK, f"{self.backend_name} request failed without explicit error")

    async def complete(self, messages: list[dict[str, str]], params: GenerationParams) -> str:
        payload = self._build_payload(messages, params)
        data = await self._request(payload)
        return self._extract_text(data)
