"""
Admin earnings routes.
Bulk upload, manual entry, review lifecycle, listing and CSV export.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import Response

import structlog

from agent_earnings.api.dependencies import get_admin_user, get_earnings_query, get_engine
from agent_earnings.api.schemas.common import (
    DataResponse,
    PaginatedResponse,
    create_pagination_info,
)
from agent_earnings.api.schemas.earnings import (
    ApproveRequest,
    BulkActionSummarySchema,
    BulkApproveRequest,
    BulkRejectRequest,
    BulkUploadRequest,
    BulkUploadResponseSchema,
    CreateEarningRequest,
    EarningSchema,
    EarningsStatsSchema,
    LedgerApplicationSchema,
    RejectRequest,
)
from agent_earnings.services.earnings.core.types import (
    BulkUploadResponse,
    EarningDraft,
    EarningsPage,
    EarningsQuery,
)
from agent_earnings.services.earnings.csv_io import csv_template
from agent_earnings.services.earnings.engine import EarningsEngine


logger = structlog.get_logger(__name__)

router = APIRouter()


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


def _upload_response(result: BulkUploadResponse) -> DataResponse[BulkUploadResponseSchema]:
    return DataResponse[BulkUploadResponseSchema](
        data=BulkUploadResponseSchema.model_validate(result),
        message=(
            f"Processed {result.total_processed} entries: {result.successful} successful, "
            f"{result.failed} failed, {result.skipped} skipped"
        )
    )


def _page_response(page: EarningsPage) -> PaginatedResponse[EarningSchema]:
    return PaginatedResponse[EarningSchema](
        data=[EarningSchema.model_validate(item) for item in page.items],
        pagination=create_pagination_info(page.total, page.page, page.limit)
    )


@router.post(
    "/bulk-upload",
    response_model=DataResponse[BulkUploadResponseSchema],
    summary="Bulk Upload Earnings",
    description="Validate, deduplicate and create earnings from parsed rows"
)
async def bulk_upload(
    payload: BulkUploadRequest,
    admin_user: str = Depends(get_admin_user),
    engine: EarningsEngine = Depends(get_engine),
):
    result = await engine.bulk_upload(
        payload.earnings,
        uploaded_by=admin_user,
        batch_description=payload.batch_description,
        auto_confirm=payload.auto_confirm,
        metadata=payload.metadata,
        default_currency=payload.default_currency,
    )
    return _upload_response(result)


@router.post(
    "/bulk-upload/csv",
    response_model=DataResponse[BulkUploadResponseSchema],
    summary="Bulk Upload Earnings (CSV)",
    description="Upload a CSV body with a header row"
)
async def bulk_upload_csv(
    request: Request,
    auto_confirm: bool = Query(False, alias="autoConfirm"),
    batch_description: Optional[str] = Query(None, alias="batchDescription", max_length=500),
    admin_user: str = Depends(get_admin_user),
    engine: EarningsEngine = Depends(get_engine),
):
    body = await request.body()
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "INVALID_ENCODING",
                "message": "CSV upload must be UTF-8 encoded"
            }
        )

    result = await engine.upload_csv(
        text,
        uploaded_by=admin_user,
        batch_description=batch_description,
        auto_confirm=auto_confirm,
    )
    return _upload_response(result)


@router.post(
    "/",
    response_model=DataResponse[EarningSchema],
    status_code=status.HTTP_201_CREATED,
    summary="Create Earning",
    description="Manual single earning entry"
)
async def create_earning(
    payload: CreateEarningRequest,
    admin_user: str = Depends(get_admin_user),
    engine: EarningsEngine = Depends(get_engine),
):
    draft = EarningDraft(
        row_number=1,
        agent_code=payload.agent_code.strip(),
        amount=payload.amount,
        type=payload.type,
        description=payload.description,
        reference_id=payload.reference_id,
        commission_rate=payload.commission_rate,
        currency=payload.currency.upper() if payload.currency else None,
        earned_at=payload.earned_at,
    )
    earning = await engine.create_earning(draft, created_by=admin_user, auto_confirm=payload.auto_confirm)
    return DataResponse[EarningSchema](
        data=EarningSchema.model_validate(earning),
        message="Earning created"
    )


@router.get(
    "/",
    response_model=PaginatedResponse[EarningSchema],
    summary="List Earnings",
    description="List earnings with filters and pagination"
)
async def list_earnings(
    query: EarningsQuery = Depends(get_earnings_query),
    engine: EarningsEngine = Depends(get_engine),
):
    return _page_response(await engine.list_earnings(query))


@router.get(
    "/pending",
    response_model=PaginatedResponse[EarningSchema],
    summary="List Pending Earnings",
    description="Earnings awaiting review"
)
async def list_pending(
    query: EarningsQuery = Depends(get_earnings_query),
    engine: EarningsEngine = Depends(get_engine),
):
    return _page_response(await engine.list_pending(query))


@router.get(
    "/summary",
    response_model=DataResponse[EarningsStatsSchema],
    summary="Earnings Summary",
    description="Counts and totals by status"
)
async def earnings_summary(
    query: EarningsQuery = Depends(get_earnings_query),
    engine: EarningsEngine = Depends(get_engine),
):
    stats = await engine.summarize(query)
    return DataResponse[EarningsStatsSchema](data=EarningsStatsSchema.model_validate(stats))


@router.get(
    "/template",
    summary="CSV Template",
    description="Download the bulk upload CSV template"
)
async def download_template():
    return _csv_response(csv_template(), "earnings_upload_template.csv")


@router.get(
    "/export",
    summary="Export Earnings",
    description="Export the filtered earnings list as CSV"
)
async def export_earnings(
    query: EarningsQuery = Depends(get_earnings_query),
    engine: EarningsEngine = Depends(get_engine),
):
    content = await engine.export_csv(query)
    return _csv_response(content, "earnings_export.csv")


@router.post(
    "/bulk-approve",
    response_model=DataResponse[BulkActionSummarySchema],
    summary="Bulk Approve",
    description="Approve every pending earning in the list; others are excluded"
)
async def bulk_approve(
    payload: BulkApproveRequest,
    admin_user: str = Depends(get_admin_user),
    engine: EarningsEngine = Depends(get_engine),
):
    summary = await engine.bulk_approve(payload.earning_ids, admin_user, payload.notes)
    return DataResponse[BulkActionSummarySchema](
        data=BulkActionSummarySchema.model_validate(summary),
        message=summary.summary
    )


@router.post(
    "/bulk-reject",
    response_model=DataResponse[BulkActionSummarySchema],
    summary="Bulk Reject",
    description="Reject every pending earning in the list with one reason"
)
async def bulk_reject(
    payload: BulkRejectRequest,
    admin_user: str = Depends(get_admin_user),
    engine: EarningsEngine = Depends(get_engine),
):
    summary = await engine.bulk_reject(payload.earning_ids, admin_user, payload.reason, payload.notes)
    return DataResponse[BulkActionSummarySchema](
        data=BulkActionSummarySchema.model_validate(summary),
        message=summary.summary
    )


@router.get(
    "/{earning_id}",
    response_model=DataResponse[EarningSchema],
    summary="Get Earning"
)
async def get_earning(
    earning_id: str,
    engine: EarningsEngine = Depends(get_engine),
):
    earning = await engine.get_earning(earning_id)
    return DataResponse[EarningSchema](data=EarningSchema.model_validate(earning))


@router.post(
    "/{earning_id}/approve",
    response_model=DataResponse[EarningSchema],
    summary="Approve Earning",
    description="Confirm a pending earning and apply it to the agent balance"
)
async def approve_earning(
    earning_id: str,
    payload: Optional[ApproveRequest] = None,
    admin_user: str = Depends(get_admin_user),
    engine: EarningsEngine = Depends(get_engine),
):
    notes = payload.notes if payload else None
    earning = await engine.approve(earning_id, admin_user, notes)
    return DataResponse[EarningSchema](
        data=EarningSchema.model_validate(earning),
        message="Earning approved"
    )


@router.post(
    "/{earning_id}/reject",
    response_model=DataResponse[EarningSchema],
    summary="Reject Earning",
    description="Cancel a pending earning; a reason is required"
)
async def reject_earning(
    earning_id: str,
    payload: RejectRequest,
    admin_user: str = Depends(get_admin_user),
    engine: EarningsEngine = Depends(get_engine),
):
    earning = await engine.reject(earning_id, admin_user, payload.reason, payload.notes)
    return DataResponse[EarningSchema](
        data=EarningSchema.model_validate(earning),
        message="Earning rejected"
    )


@router.post(
    "/{earning_id}/reapply-ledger",
    response_model=DataResponse[LedgerApplicationSchema],
    summary="Re-apply Ledger",
    description="Retry the balance update of a confirmed earning whose credit failed"
)
async def reapply_ledger(
    earning_id: str,
    admin_user: str = Depends(get_admin_user),
    engine: EarningsEngine = Depends(get_engine),
):
    application = await engine.reapply_ledger(earning_id)
    logger.info(
        "Ledger re-apply requested",
        earning_id=earning_id,
        admin_user=admin_user,
        applied=application.applied
    )
    return DataResponse[LedgerApplicationSchema](
        data=LedgerApplicationSchema.model_validate(application),
        message="Ledger applied" if application.applied else "Ledger was already applied"
    )
