"""Lever postings API adapter (one company board per source)."""

from typing import Any

import httpx

from src.core.config import SourceConfig
from src.core.schemas import RawPosting
from src.sources.base import SourceAdapter, SourceError

_DEFAULT_URL = "https://api.lever.co/v0/postings/{company}"


class LeverAdapter(SourceAdapter):
    """Lever paginates with ``skip``/``limit`` and returns a bare JSON list."""

    def __init__(self, config: SourceConfig, client: httpx.AsyncClient) -> None:
        super().__init__(config, client)
        self._company = config.params.get("company", "").strip()
        if not self._company:
            msg = f"source '{config.name}' needs params.company for the Lever adapter"
            raise ValueError(msg)

    @property
    def source_id(self) -> str:
        return "lever"

    def build_request(self, page: int) -> tuple[str, dict[str, Any]]:
        url = (self.config.base_url or _DEFAULT_URL).format(company=self._company)
        size = self.config.page_size
        return url, {"mode": "json", "skip": (page - 1) * size, "limit": size}

    def extract_records(self, payload: Any) -> list[RawPosting]:
        if not isinstance(payload, list):
            msg = f"{self.name}: expected a JSON list of postings"
            raise SourceError(msg)
        # the board's company name is not part of each posting
        return [{**r, "_company": self._company} for r in payload if isinstance(r, dict)]
