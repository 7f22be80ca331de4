"""
Download API Routes

Quota-enforced download authorization and download history.
"""

import logging
from typing import List

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from app.api.dependencies import AdminDep, PrincipalDep, QuotaDep
from app.domain.quota import DownloadContext, QuotaDecision, QuotaStatus
from app.domain.subscription import Pagination
from app.infrastructure.db.models.download import DownloadRead
from app.infrastructure.exceptions import QuotaExceededError


logger = logging.getLogger(__name__)

router = APIRouter()


class DownloadPage(BaseModel):
    downloads: List[DownloadRead]
    pagination: Pagination


@router.post("/downloads/asset/{asset_id}", response_model=QuotaDecision)
async def download_asset(
    asset_id: int,
    request: Request,
    principal: PrincipalDep,
    quota: QuotaDep,
):
    """
    Consume one download of today's quota.

    Returns 403 with ``remaining: 0`` and the reason when denied.
    """
    context = DownloadContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    decision = await quota.check_and_consume(principal, asset_id, context)
    if not decision.allowed:
        raise QuotaExceededError(decision.reason, remaining=decision.remaining)
    return decision


@router.get("/downloads/check-limit", response_model=QuotaStatus)
async def check_limit(principal: PrincipalDep, quota: QuotaDep):
    return await quota.status(principal.user_id, privileged=principal.is_admin)


@router.get("/downloads/my-history", response_model=DownloadPage)
async def my_history(
    principal: PrincipalDep,
    quota: QuotaDep,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    items, pagination = await quota.history(principal.user_id, page, limit)
    return DownloadPage(
        downloads=[DownloadRead.model_validate(item) for item in items],
        pagination=pagination,
    )


@router.get("/downloads/all", response_model=DownloadPage)
async def all_downloads(
    quota: QuotaDep,
    admin: AdminDep,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    items, pagination = await quota.all_downloads(page, limit)
    return DownloadPage(
        downloads=[DownloadRead.model_validate(item) for item in items],
        pagination=pagination,
    )
