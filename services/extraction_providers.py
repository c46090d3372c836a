"""Extraction providers that turn an uploaded report into candidate rows.

Every provider implements :class:`ExtractionProvider`. The orchestrator only
talks to that interface; adding a provider means adding a class here and a
branch in :func:`build_provider`, never touching the orchestrator.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import urlsplit, urlunsplit

import pandas as pd
import requests

from services.extraction_errors import (
    ExtractionError,
    InputError,
    ProviderNotEnabled,
    ProviderTimeout,
    ProviderTransportError,
)
from services.extraction_prompts import SCHEMA_NAME

logger = logging.getLogger(__name__)

SPREADSHEET_SUFFIXES = {".csv", ".xlsx"}
TEXT_SUFFIXES = {".txt"}
SUPPORTED_SUFFIXES = {".pdf"} | SPREADSHEET_SUFFIXES | TEXT_SUFFIXES


@dataclass
class SourceDocument:
    filename: str
    content: bytes
    content_type: str = "application/pdf"
    limit_pages: int = 0

    @property
    def suffix(self) -> str:
        return Path(self.filename or "").suffix.lower()


@dataclass
class ProviderResponse:
    """Raw provider body plus whatever metadata the provider reported."""

    body: Any
    meta: Dict[str, Any] = field(default_factory=dict)


class ExtractionProvider(Protocol):
    name: str

    def extract(
        self,
        document: SourceDocument,
        schema: Dict[str, Any],
        instructions: str,
        abort: threading.Event,
    ) -> ProviderResponse:
        ...


def _upstream_status(status_code: Optional[int]) -> int:
    """Status to surface for an upstream HTTP failure.

    Size and rate limits and upstream 5xx codes pass through; anything else
    (auth, bad request) is a bad gateway from the caller's point of view.
    """

    if status_code in (413, 429) or (status_code is not None and status_code >= 500):
        return status_code
    return 502


def spreadsheet_to_text(document: SourceDocument) -> str:
    """Render a CSV/XLSX upload as tab separated text for inline prompting."""

    buffer = BytesIO(document.content)
    try:
        if document.suffix == ".csv":
            frame = pd.read_csv(buffer, dtype=str, keep_default_na=False)
        else:
            frame = pd.read_excel(buffer, dtype=str, sheet_name=0)
    except Exception as exc:
        raise InputError(f"Could not read spreadsheet '{document.filename}': {exc}") from exc
    frame = frame.fillna("")
    return frame.to_csv(sep="\t", index=False)


class OpenAIResponsesProvider:
    """OpenAI Responses API with structured output and transient file uploads."""

    name = "openai"

    def __init__(
        self,
        *,
        api_key: Optional[str],
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 90.0,
        cleanup_timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cleanup_timeout = cleanup_timeout
        self._session = session or requests.Session()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _request(self, method: str, path: str, *, timeout: Optional[float] = None, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(
                method,
                url,
                headers=self._headers(),
                timeout=timeout or self.timeout,
                **kwargs,
            )
            response.raise_for_status()
            return response
        except requests.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            message = exc.response.text if exc.response is not None else str(exc)
            raise ProviderTransportError(
                f"OpenAI {method} {path} failed ({status_code}): {message[:500]}",
                status_code=_upstream_status(status_code),
            ) from exc
        except requests.Timeout as exc:
            raise ProviderTimeout(timeout or self.timeout) from exc
        except requests.RequestException as exc:
            raise ProviderTransportError(f"OpenAI request failed: {exc}") from exc

    def _upload_file(self, document: SourceDocument) -> str:
        response = self._request(
            "POST",
            "/files",
            data={"purpose": "user_data"},
            files={
                "file": (
                    document.filename or "report.pdf",
                    document.content,
                    document.content_type or "application/pdf",
                )
            },
        )
        payload = response.json() if response.content else {}
        file_id = payload.get("id") if isinstance(payload, dict) else None
        if not file_id:
            raise ProviderTransportError("OpenAI file upload returned no file id")
        return file_id

    def _delete_file(self, file_id: str) -> None:
        try:
            self._request("DELETE", f"/files/{file_id}", timeout=self.cleanup_timeout)
        except Exception:
            logger.warning("Failed to delete transient OpenAI file %s", file_id, exc_info=True)

    def _response_format(self, schema: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "format": {
                "type": "json_schema",
                "name": SCHEMA_NAME,
                "schema": schema,
                "strict": True,
            }
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def extract(
        self,
        document: SourceDocument,
        schema: Dict[str, Any],
        instructions: str,
        abort: threading.Event,
    ) -> ProviderResponse:
        if not self.api_key:
            raise ExtractionError("OPENAI_API_KEY not configured", status_code=500)

        file_id: Optional[str] = None
        try:
            if document.suffix in SPREADSHEET_SUFFIXES or document.suffix in TEXT_SUFFIXES:
                if document.suffix in TEXT_SUFFIXES:
                    table_text = document.content.decode("utf-8", errors="ignore")
                else:
                    table_text = spreadsheet_to_text(document)
                content: List[Dict[str, Any]] = [
                    {
                        "type": "input_text",
                        "text": f"{instructions}\n\nREPORT (tab separated):\n{table_text}",
                    }
                ]
            else:
                file_id = self._upload_file(document)
                content = [
                    {"type": "input_file", "file_id": file_id},
                    {"type": "input_text", "text": instructions},
                ]

            if abort.is_set():
                raise ProviderTimeout(self.timeout)

            payload = {
                "model": self.model,
                "input": [{"role": "user", "content": content}],
                "text": self._response_format(schema),
            }
            logger.info(
                "Requesting OpenAI extraction for %s with model %s",
                document.filename,
                self.model,
            )
            response = self._request("POST", "/responses", json=payload)
            try:
                body = response.json() if response.content else {}
            except ValueError as exc:
                raise ProviderTransportError("OpenAI returned a non-JSON envelope") from exc
            return ProviderResponse(body=body, meta={"provider": self.name, "model": self.model})
        finally:
            if file_id:
                self._delete_file(file_id)


class ParserServiceProvider:
    """External parser microservice that returns ``{rows, meta}`` directly."""

    name = "parser"

    def __init__(
        self,
        *,
        url: Optional[str],
        token: Optional[str] = None,
        timeout: float = 90.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.token = token
        self.timeout = timeout
        self._session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.token:
            token = str(self.token)
            headers["Authorization"] = token if token.startswith("Bearer") else f"Bearer {token}"
        return headers

    def health_url(self) -> Optional[str]:
        """Return the ``/health`` sibling of a ``/parse`` endpoint."""

        if not self.url:
            return None
        parts = urlsplit(self.url)
        path = parts.path
        if path.rstrip("/").endswith("/parse"):
            path = path.rstrip("/")[: -len("/parse")] + "/health"
        return urlunsplit((parts.scheme, parts.netloc, path, "", ""))

    def health(self) -> Dict[str, Any]:
        url = self.health_url()
        if not url:
            return {"tried": False}
        try:
            response = self._session.get(url, timeout=10)
        except requests.RequestException as exc:
            return {"tried": True, "url": url, "error": str(exc)}
        return {
            "tried": True,
            "url": url,
            "status": response.status_code,
            "body": response.text[:300],
        }

    def extract(
        self,
        document: SourceDocument,
        schema: Dict[str, Any],
        instructions: str,
        abort: threading.Event,
    ) -> ProviderResponse:
        if not self.url:
            raise ExtractionError("PARSER_URL not configured", status_code=500)
        if abort.is_set():
            raise ProviderTimeout(self.timeout)

        params = {"limit_pages": str(document.limit_pages or 0)}
        files = {
            "file": (
                document.filename or "report.pdf",
                document.content,
                document.content_type or "application/pdf",
            )
        }
        try:
            response = self._session.post(
                self.url,
                params=params,
                files=files,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise ProviderTimeout(self.timeout) from exc
        except requests.RequestException as exc:
            raise ProviderTransportError(f"Parser request failed: {exc}") from exc

        text = response.text or ""
        try:
            body: Any = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError:
            body = text

        if not response.ok:
            detail = None
            if isinstance(body, dict):
                detail = body.get("error") or body.get("detail")
            raise ProviderTransportError(
                str(detail or text[:500] or "Parser error (empty response body)"),
                status_code=response.status_code,
            )

        meta: Dict[str, Any] = {"provider": self.name, "parser_url": response.url or self.url}
        if isinstance(body, dict) and isinstance(body.get("meta"), dict):
            meta.update(body["meta"])
        if isinstance(body, dict) and isinstance(body.get("store"), dict):
            meta["store"] = body["store"]
        return ProviderResponse(body=body, meta=meta)


class DisabledProvider:
    """Placeholder for a configured provider name that has no implementation yet."""

    def __init__(self, name: str) -> None:
        self.name = name

    def extract(
        self,
        document: SourceDocument,
        schema: Dict[str, Any],
        instructions: str,
        abort: threading.Event,
    ) -> ProviderResponse:
        raise ProviderNotEnabled(f"Extraction provider '{self.name}' is not enabled")


def build_provider(settings: Any) -> ExtractionProvider:
    """Return the provider selected by ``settings.extraction_provider``."""

    name = (getattr(settings, "extraction_provider", "") or "").strip().lower()
    timeout = float(getattr(settings, "extraction_timeout_seconds", 90.0))
    if name == "openai":
        return OpenAIResponsesProvider(
            api_key=getattr(settings, "openai_api_key", None),
            model=getattr(settings, "openai_model", "gpt-5"),
            base_url=getattr(settings, "openai_base_url", "https://api.openai.com/v1"),
            timeout=timeout,
        )
    if name == "parser":
        return ParserServiceProvider(
            url=getattr(settings, "parser_url", None),
            token=getattr(settings, "parser_token", None),
            timeout=timeout,
        )
    return DisabledProvider(name or "unknown")


__all__ = [
    "DisabledProvider",
    "ExtractionProvider",
    "OpenAIResponsesProvider",
    "ParserServiceProvider",
    "ProviderResponse",
    "SUPPORTED_SUFFIXES",
    "SourceDocument",
    "build_provider",
    "spreadsheet_to_text",
]
