"""
Statement API routes.

Provides endpoints to preview, import and convert bank and credit card
statements, and to download the standard import template.
"""
import time
from pathlib import PurePath
from typing import Optional, Tuple

import structlog
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from statement_importer.config import get_settings
from statement_importer.database import get_db
from statement_importer.engine.institution import (
    InferredInstitution,
    infer_institution_from_filename,
)
from statement_importer.engine.models import AccountType, ImportScope
from statement_importer.engine.orchestrator import ImportOrchestrator
from statement_importer.engine.pipeline import StatementParseResult, parse_statement
from statement_importer.engine.standard_template import (
    generate_csv_template,
    generate_standard_csv,
)
from statement_importer.exceptions import FileTooLargeError
from statement_importer.schemas.statements import (
    AnalysisResponse,
    ErrorResponse,
    ImportResponse,
    InstitutionResponse,
    ParsedRowResponse,
    PolarityResponse,
    PreviewResponse,
    SummaryResponse,
)
from statement_importer.services.remote_analyzer import (
    RemoteColumnAnalyzer,
    get_remote_analyzer,
)
from statement_importer.services.transaction_store import SqlAlchemyTransactionStore

logger = structlog.get_logger(__name__)
settings = get_settings()

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Unsupported file format"},
    413: {"model": ErrorResponse, "description": "File too large"},
    422: {"model": ErrorResponse, "description": "Empty, unreadable or tableless file"},
}


async def read_upload(file: UploadFile) -> bytes:
    """
    Read an uploaded file, enforcing the size limit.

    Raises:
        FileTooLargeError: If the file exceeds ``max_upload_size_bytes``.
    """
    data = await file.read()
    if len(data) > settings.max_upload_size_bytes:
        raise FileTooLargeError(len(data), settings.max_upload_size_bytes)
    return data


def resolve_account_type(
    filename: str,
    account_type: Optional[AccountType],
) -> Tuple[AccountType, Optional[InferredInstitution]]:
    """Explicit account type, else the one suggested by the filename."""
    inferred = infer_institution_from_filename(filename)
    if account_type is not None:
        return AccountType(account_type), inferred
    if inferred is not None:
        return inferred.kind.account_type, inferred
    return AccountType.BANK_ACCOUNT, inferred


def build_preview(
    result: StatementParseResult,
    inferred: Optional[InferredInstitution],
    processing_time_ms: float,
) -> PreviewResponse:
    """Convert a parse result to the preview schema."""
    classification = result.classification
    institution = None
    if inferred is not None:
        institution = InstitutionResponse(kind=inferred.kind.value, name=inferred.name)
    polarity = None
    if classification.polarity is not None:
        polarity = PolarityResponse.model_validate(classification.polarity)

    return PreviewResponse(
        filename=result.filename,
        format=result.format.value,
        account_type=result.account_type,
        institution=institution,
        analysis=AnalysisResponse.model_validate(result.analysis),
        polarity=polarity,
        summary=SummaryResponse.model_validate(result.summary),
        rows=[ParsedRowResponse.model_validate(row) for row in classification.rows],
        warnings=list(classification.warnings),
        processing_time_ms=round(processing_time_ms, 2),
    )


@router.post(
    "/statements/preview",
    response_model=PreviewResponse,
    responses=ERROR_RESPONSES,
    summary="Preview a statement",
    description="Parse and classify a statement without storing anything.",
)
async def preview_statement(
    file: UploadFile = File(..., description="Statement file (csv, txt, xls, xlsx)"),
    account_type: Optional[AccountType] = Form(None),
    default_category: Optional[str] = Form(None),
    remote: Optional[RemoteColumnAnalyzer] = Depends(get_remote_analyzer),
) -> PreviewResponse:
    """
    Preview how a statement would be imported.

    Args:
        file: Statement file.
        account_type: Account kind; inferred from the filename when omitted.
        default_category: Category for rows that carry none.

    Returns:
        PreviewResponse with the analysis and every classified row.
    """
    start_time = time.perf_counter()
    filename = file.filename or "statement.csv"
    data = await read_upload(file)
    resolved_type, inferred = resolve_account_type(filename, account_type)

    result = await parse_statement(
        filename, data, resolved_type, remote=remote, default_category=default_category
    )

    processing_time_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        "Statement previewed",
        filename=filename,
        size=len(data),
        account_type=resolved_type.value,
        ok=result.summary.ok,
        processing_time_ms=round(processing_time_ms, 2),
    )
    return build_preview(result, inferred, processing_time_ms)


@router.post(
    "/statements/import",
    response_model=ImportResponse,
    responses=ERROR_RESPONSES,
    summary="Import a statement",
    description="Parse a statement and store its expenses, skipping re-imported rows.",
)
async def import_statement(
    file: UploadFile = File(..., description="Statement file (csv, txt, xls, xlsx)"),
    household_id: str = Form(..., description="Household receiving the transactions"),
    account_type: Optional[AccountType] = Form(None),
    account_id: Optional[str] = Form(None),
    credit_card_id: Optional[str] = Form(None),
    skip_duplicates: bool = Form(True),
    default_category: Optional[str] = Form(None),
    remote: Optional[RemoteColumnAnalyzer] = Depends(get_remote_analyzer),
    db: Session = Depends(get_db),
) -> ImportResponse:
    """
    Import the expenses of a statement.

    Args:
        file: Statement file.
        household_id: Owning household.
        account_type: Account kind; inferred from the filename when omitted.
        account_id: Checking account (bank statements).
        credit_card_id: Credit card (card statements).
        skip_duplicates: Skip rows already imported into the same scope.
        default_category: Category for rows that carry none.
        db: Database session.

    Returns:
        ImportResponse with counts, per-row errors and the classification summary.
    """
    filename = file.filename or "statement.csv"
    data = await read_upload(file)
    resolved_type, _ = resolve_account_type(filename, account_type)

    result = await parse_statement(
        filename, data, resolved_type, remote=remote, default_category=default_category
    )

    scope = ImportScope(
        household_id=household_id,
        account_type=resolved_type,
        account_id=account_id,
        credit_card_id=credit_card_id,
        original_filename=filename,
    )
    orchestrator = ImportOrchestrator(
        SqlAlchemyTransactionStore(db), batch_size=settings.import_batch_size
    )
    outcome = orchestrator.import_rows(
        scope, result.classification.rows, skip_duplicates=skip_duplicates
    )

    response = ImportResponse.model_validate(outcome)
    response.summary = SummaryResponse.model_validate(result.summary)
    return response


@router.post(
    "/statements/convert",
    responses=ERROR_RESPONSES,
    summary="Convert a statement to the standard template",
    description="Re-emit the importable rows of a statement as a standard template CSV.",
)
async def convert_statement(
    file: UploadFile = File(..., description="Statement file (csv, txt, xls, xlsx)"),
    account_type: Optional[AccountType] = Form(None),
    account_name: Optional[str] = Form(None),
    remote: Optional[RemoteColumnAnalyzer] = Depends(get_remote_analyzer),
) -> Response:
    filename = file.filename or "statement.csv"
    data = await read_upload(file)
    resolved_type, _ = resolve_account_type(filename, account_type)

    result = await parse_statement(filename, data, resolved_type, remote=remote)
    content = generate_standard_csv(result.classification.rows, account_name)

    logger.info("Statement converted", filename=filename, rows=result.summary.ok)
    output_name = f"{PurePath(filename).stem}_standard.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{output_name}"'},
    )


@router.get(
    "/statements/template",
    summary="Download the standard import template",
)
async def download_template(
    account_type: AccountType = Query(AccountType.BANK_ACCOUNT),
) -> Response:
    """Standard CSV template with instructions and example rows."""
    content = generate_csv_template(account_type)
    return Response(
        content=content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="template_{account_type.value}.csv"'
        },
    )
