"""
Remote column analyzer client.

Sends a sample of the statement to an external analysis service and turns
the reply into a CSVAnalysis. Every failure (transport error, timeout,
non-2xx status, malformed or inconsistent payload) is returned as an
``AnalyzerResult.failure`` so callers fall back to the local analyzer.
"""
import time
from typing import List, Optional

import httpx
import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from statement_importer.config import get_settings
from statement_importer.engine.mapping import AnalyzerResult, split_rows
from statement_importer.engine.models import (
    INFLOW_FIELDS,
    OUTFLOW_FIELDS,
    ColumnMapping,
    CSVAnalysis,
    InternalField,
)
from statement_importer.exceptions import RemoteAnalyzerError

logger = structlog.get_logger(__name__)


class RemoteColumnMapping(BaseModel):
    """One column mapping as returned by the analysis service."""

    model_config = ConfigDict(populate_by_name=True)

    csv_column: str = Field("", alias="csvColumn", description="Source column label")
    csv_index: int = Field(..., alias="csvIndex", ge=0, description="Source column index")
    internal_field: InternalField = Field(..., alias="internalField")
    confidence: float = Field(0.5, ge=0.0, le=1.0)


class RemoteAnalysisPayload(BaseModel):
    """Response contract of the analysis service."""

    model_config = ConfigDict(populate_by_name=True)

    separator: str = Field(..., min_length=1, max_length=1)
    has_header: bool = Field(True, alias="hasHeader")
    has_in_out_columns: bool = Field(
        False,
        validation_alias=AliasChoices("hasEntradaSaida", "hasInOutColumns", "has_in_out_columns"),
    )
    column_mappings: List[RemoteColumnMapping] = Field(default_factory=list, alias="columnMappings")
    date_format: Optional[str] = Field(None, alias="dateFormat")

    def to_analysis(self, headers: List[str]) -> CSVAnalysis:
        return CSVAnalysis(
            separator=self.separator,
            has_header=self.has_header,
            has_in_out_columns=self.has_in_out_columns,
            column_mappings=[
                ColumnMapping(
                    source_column=m.csv_column or (
                        headers[m.csv_index] if m.csv_index < len(headers) else ""
                    ),
                    source_index=m.csv_index,
                    internal_field=m.internal_field,
                    confidence=m.confidence,
                )
                for m in self.column_mappings
            ],
            date_format_hint=self.date_format,
            headers=headers,
            source="remote",
        )


def check_analysis(analysis: CSVAnalysis, width: int) -> None:
    """
    Verify a remote analysis against the content it describes.

    Raises:
        RemoteAnalyzerError: If the analysis is unusable.
    """
    fields = [m.internal_field for m in analysis.column_mappings]
    if any(m.source_index >= width for m in analysis.column_mappings):
        raise RemoteAnalyzerError("column index out of bounds")
    if len(fields) != len(set(fields)):
        raise RemoteAnalyzerError("field mapped more than once")
    has_pair = any(f in fields for f in INFLOW_FIELDS + OUTFLOW_FIELDS)
    if InternalField.AMOUNT in fields and has_pair:
        raise RemoteAnalyzerError("amount and inflow/outflow columns are mutually exclusive")
    if InternalField.AMOUNT not in fields and not has_pair:
        raise RemoteAnalyzerError("no amount column mapped")


class RemoteColumnAnalyzer:
    """
    HTTP client for the remote column analysis service.

    Args:
        url: Endpoint receiving ``{"content", "sampleSize"}``.
        api_key: Optional bearer token.
        timeout: Request timeout in seconds.
        sample_size: Number of data lines sent along with the header.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        sample_size: int = 50,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.sample_size = sample_size
        self.transport = transport

    async def analyze(self, content: str) -> AnalyzerResult:
        lines = [line for line in content.splitlines() if line.strip()]
        sample = "\n".join(lines[: self.sample_size + 1])

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.url,
                    json={"content": sample, "sampleSize": self.sample_size},
                    headers=headers,
                )
        except httpx.TimeoutException:
            logger.warning("remote_analyzer_timeout", url=self.url)
            return AnalyzerResult.failure("timeout")
        except httpx.RequestError as e:
            logger.warning("remote_analyzer_request_error", url=self.url, error=str(e))
            return AnalyzerResult.failure(f"request error: {e}")

        response_time_ms = int((time.time() - start_time) * 1000)
        if not 200 <= response.status_code < 300:
            logger.warning(
                "remote_analyzer_http_error",
                status_code=response.status_code,
                response_time_ms=response_time_ms,
            )
            return AnalyzerResult.failure(f"HTTP {response.status_code}")

        try:
            payload = RemoteAnalysisPayload.model_validate(response.json())
            rows = split_rows(sample, payload.separator)
            width = max((len(row) for row in rows), default=0)
            row_headers = rows[0] if rows and payload.has_header else []
            analysis = payload.to_analysis(row_headers)
            check_analysis(analysis, width)
        except RemoteAnalyzerError as e:
            logger.warning("remote_analyzer_rejected", error=e.message)
            return AnalyzerResult.failure(e.message)
        except ValueError as e:
            # Invalid JSON and pydantic validation errors are both ValueErrors
            logger.warning("remote_analyzer_malformed_payload", error=str(e)[:200])
            return AnalyzerResult.failure("malformed payload")

        logger.info(
            "remote_analyzer_succeeded",
            response_time_ms=response_time_ms,
            mappings=len(analysis.column_mappings),
        )
        return AnalyzerResult.success(analysis)


def get_remote_analyzer() -> Optional[RemoteColumnAnalyzer]:
    """Remote analyzer from settings, or None when no URL is configured."""
    settings = get_settings()
    if not settings.analyzer_url:
        return None
    return RemoteColumnAnalyzer(
        url=settings.analyzer_url,
        api_key=settings.analyzer_api_key,
        timeout=settings.analyzer_timeout_seconds,
        sample_size=settings.analyzer_sample_size,
    )
