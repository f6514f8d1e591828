"""
Remote sanctions/PEP screening service client.

Expected API:
    GET  /v1/lists/version         -> {"version": "..."}
    POST /v1/screen {name, list_version}
        -> {"matches": [{"list_name", "category", "entry_name",
                         "match_type", "score", "pep_category"}]}

Queries carry the list version read when the snapshot was taken, so every
lookup of one evaluation is answered from the same list version.
"""

import logging
from typing import Any, Optional

import httpx

from riskguard.config import Settings, settings as default_settings
from riskguard.exceptions import DependencyError
from riskguard.screening.base import (
    ListCategory,
    MatchType,
    ScreeningMatch,
    ScreeningResult,
)

logger = logging.getLogger(__name__)


def _parse_match(data: dict[str, Any]) -> ScreeningMatch:
    return ScreeningMatch(
        list_name=data["list_name"],
        category=ListCategory(data.get("category", ListCategory.OTHER.value)),
        entry_name=data.get("entry_name", ""),
        match_type=MatchType(data.get("match_type", MatchType.FUZZY.value)),
        score=float(data.get("score", 0.0)),
        pep_category=data.get("pep_category"),
    )


class HttpScreeningSnapshot:
    """Lookups pinned to one remote list version."""

    def __init__(self, provider: "HttpScreeningProvider", version: str):
        self._provider = provider
        self.version = version

    async def screen_name(self, name: str) -> ScreeningResult:
        data = await self._provider._request(
            "POST",
            "/v1/screen",
            json={"name": name, "list_version": self.version},
        )
        try:
            matches = [_parse_match(m) for m in data.get("matches", [])]
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Invalid screening response for '{name}': {e}")
            raise DependencyError(
                f"Invalid screening response: {e}", dependency="screening"
            )
        return ScreeningResult(name=name, matches=matches, list_version=self.version)


class HttpScreeningProvider:
    """Screening provider backed by a remote HTTP service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ):
        cfg = settings or default_settings
        self.base_url = base_url or cfg.screening_api_url
        if not self.base_url:
            raise ValueError("Screening service URL is not configured")

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        key = api_key or cfg.screening_api_key
        if key:
            headers["Authorization"] = f"Bearer {key}"

        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or cfg.screening_timeout_seconds,
        )

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Screening service error on {path}: {e}")
            raise DependencyError(
                f"Screening service returned {e.response.status_code}",
                dependency="screening",
            )
        except httpx.RequestError as e:
            logger.error(f"Screening service request failed on {path}: {e}")
            raise DependencyError(f"Screening service unreachable: {e}", dependency="screening")
        except ValueError as e:
            logger.error(f"Screening service sent invalid JSON on {path}: {e}")
            raise DependencyError("Screening service sent invalid JSON", dependency="screening")

    async def snapshot(self) -> HttpScreeningSnapshot:
        data = await self._request("GET", "/v1/lists/version")
        version = data.get("version")
        if not version:
            raise DependencyError("Screening service did not report a list version", dependency="screening")
        return HttpScreeningSnapshot(self, str(version))

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpScreeningProvider":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
