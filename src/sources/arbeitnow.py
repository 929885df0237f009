"""Arbeitnow public job board API adapter."""

from typing import Any

from src.core.schemas import RawPosting
from src.sources.base import SourceAdapter, SourceError

_DEFAULT_URL = "https://www.arbeitnow.com/api/job-board-api"


class ArbeitnowAdapter(SourceAdapter):
    """Pages through ``/api/job-board-api?page=N``; postings live under ``data``."""

    @property
    def source_id(self) -> str:
        return "arbeitnow"

    def build_request(self, page: int) -> tuple[str, dict[str, Any]]:
        return self.config.base_url or _DEFAULT_URL, {"page": page, **self.config.params}

    def extract_records(self, payload: Any) -> list[RawPosting]:
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            msg = f"{self.name}: expected an object with a 'data' list"
            raise SourceError(msg)
        return [r for r in payload["data"] if isinstance(r, dict)]
