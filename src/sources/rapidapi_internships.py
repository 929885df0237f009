"""RapidAPI internships feed adapter."""

import os
from typing import Any

import httpx

from src.core.config import SourceConfig
from src.core.schemas import RawPosting
from src.sources.base import SourceAdapter, SourceError

_DEFAULT_URL = "https://internships-api.p.rapidapi.com/active-jb-7d"
_HOST = "internships-api.p.rapidapi.com"


class RapidAPIInternshipsAdapter(SourceAdapter):
    """Authenticated with an API key header; responses are a bare JSON list."""

    def __init__(self, config: SourceConfig, client: httpx.AsyncClient) -> None:
        super().__init__(config, client)
        env_var = config.api_key_env or "RAPIDAPI_KEY"
        self._api_key = os.environ.get(env_var, "")
        if not self._api_key:
            msg = f"{env_var} environment variable is required for source '{config.name}'"
            raise ValueError(msg)

    @property
    def source_id(self) -> str:
        return "rapidapi-internships"

    def headers(self) -> dict[str, str]:
        return {"X-RapidAPI-Key": self._api_key, "X-RapidAPI-Host": _HOST}

    def build_request(self, page: int) -> tuple[str, dict[str, Any]]:
        return self.config.base_url or _DEFAULT_URL, {"page": page, **self.config.params}

    def extract_records(self, payload: Any) -> list[RawPosting]:
        if not isinstance(payload, list):
            msg = f"{self.name}: expected a JSON list of internships"
            raise SourceError(msg)
        return [r for r in payload if isinstance(r, dict)]
