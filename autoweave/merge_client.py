"""
merge_client.py — HTTP client for the AutoWeave merge service.

The service takes the time-entries and incomes exports (plus an optional
projects export) and returns JSON:

    {"stats": {...}, "download_csv": "...", "preview_csv": "...", "mode": "..."}

Only `download_csv` feeds the charts. Auth state lives in an explicit
Session backed by a pluggable TokenStorage instead of module globals.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol, Union

import httpx

from .config import get_settings

logger = logging.getLogger(__name__)

MERGE_PATH = "/api/v1/merge/autotrac"

CsvInput = Union[str, bytes, Path, tuple]


class MergeError(RuntimeError):
    pass


class MissingInputError(MergeError):
    pass


class NetworkFailure(MergeError):
    pass


class MergeServiceError(MergeError):
    def __init__(self, status_code: int, body: str):
        super().__init__(f"Backend error ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


class EmptyMergeOutput(MergeError):
    def __init__(self, mode: str | None):
        super().__init__(f"No output returned. mode={mode or 'unknown'}")
        self.mode = mode


# ---------------------------------------------------------------------------
# Session + token storage
# ---------------------------------------------------------------------------

class TokenStorage(Protocol):
    def load(self) -> Optional[str]: ...
    def save(self, token: str) -> None: ...
    def clear(self) -> None: ...


class MemoryTokenStorage:
    def __init__(self, token: Optional[str] = None):
        self._token = token

    def load(self) -> Optional[str]:
        return self._token

    def save(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileTokenStorage:
    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            logger.warning("Ignoring unreadable session file: %s", self.path)
            return None
        token = data.get("token") if isinstance(data, dict) else None
        return str(token) if token else None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump({"token": token}, f)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class Session:
    def __init__(self, storage: TokenStorage | None = None):
        self.storage = storage or MemoryTokenStorage()
        self._token  = self.storage.load()

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def signed_in(self) -> bool:
        return bool(self._token)

    def sign_in(self, token: str) -> None:
        self._token = token
        self.storage.save(token)

    def sign_out(self) -> None:
        self._token = None
        self.storage.clear()

    def headers(self) -> dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}


# ---------------------------------------------------------------------------
# Merge call
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MergeResult:
    download_csv: str
    stats:        dict[str, Any] = field(default_factory=dict)
    preview_csv:  str = ""
    mode:         Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "MergeResult":
        download = payload.get("download_csv")
        if not isinstance(download, str) or not download:
            raise EmptyMergeOutput(payload.get("mode"))
        stats = payload.get("stats")
        return cls(
            download_csv=download,
            stats=stats if isinstance(stats, dict) else {},
            preview_csv=str(payload.get("preview_csv") or ""),
            mode=payload.get("mode"),
        )


def as_upload(value: CsvInput, default_name: str) -> tuple[str, bytes, str]:
    if isinstance(value, tuple):
        name, content = value[0], value[1]
    elif isinstance(value, Path):
        name, content = value.name, value.read_bytes()
    else:
        name, content = default_name, value
    if isinstance(content, str):
        content = content.encode("utf-8")
    return name, content, "text/csv"


def _build_httpx_client(base_url: str, timeout: float) -> httpx.Client:
    return httpx.Client(base_url=base_url, timeout=timeout)


class MergeClient:
    def __init__(
        self,
        *,
        session: Session | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ):
        settings = get_settings()
        self.session  = session or Session()
        self.base_url = (base_url or settings.api_base).rstrip("/")
        self._client  = client or _build_httpx_client(
            self.base_url, timeout if timeout is not None else settings.timeout_seconds
        )

    def merge(
        self,
        time_entries: CsvInput | None,
        incomes: CsvInput | None,
        projects: CsvInput | None = None,
    ) -> MergeResult:
        if not time_entries or not incomes:
            raise MissingInputError(
                "Please select at least 2 files: Time entries CSV + Income CSV. (Projects CSV optional.)"
            )

        files = {
            "time_entries_csv": as_upload(time_entries, "time_entries.csv"),
            "incomes_csv":      as_upload(incomes, "incomes.csv"),
        }
        if projects:
            files["projects_csv"] = as_upload(projects, "projects.csv")

        try:
            response = self._client.post(MERGE_PATH, files=files, headers=self.session.headers())
        except httpx.HTTPError as exc:
            raise NetworkFailure(f"Request failed: {exc}") from exc

        if response.status_code >= 400:
            raise MergeServiceError(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as exc:
            raise MergeServiceError(response.status_code, "Response was not valid JSON.") from exc
        if not isinstance(payload, dict):
            raise MergeServiceError(response.status_code, "Response JSON was not an object.")

        result = MergeResult.from_payload(payload)
        logger.info("Merge complete | mode=%s | %d bytes of CSV", result.mode, len(result.download_csv))
        return result

    def close(self) -> None:
        self._client.close()
