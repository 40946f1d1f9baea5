"""
Operator review of ingested deals: list pending, promote, reject
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, require_admin_token
from ingestion.promotion import PromotionEngine
from schemas.api import PendingDealsResponse, RawDealResponse, IdsRequest
from schemas.ingestion import PromotionStats, RejectResult
import logging

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/admin/ingestion",
    tags=["Admin"],
    dependencies=[Depends(require_admin_token)],
)


@router.get("/pending", response_model=PendingDealsResponse)
async def list_pending(
    limit: int = Query(50, ge=1, le=200, description="Maximum rows to return"),
    db: AsyncSession = Depends(get_db)
):
    engine = PromotionEngine(db)
    reviews = await engine.list_pending_ingested_deals(limit=limit)
    items = [RawDealResponse.from_review(review) for review in reviews]
    return PendingDealsResponse(
        items=items,
        count=len(items),
        auto_rejected_last_7_days=await engine.count_recent_auto_rejected(days=7),
    )


@router.post("/promote", response_model=PromotionStats)
async def promote(request: Request, body: IdsRequest, db: AsyncSession = Depends(get_db)):
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] Promoting {len(body.ids)} ingested deals")
    return await PromotionEngine(db).promote_ingested_deals_by_ids(body.ids)


@router.post("/reject", response_model=RejectResult)
async def reject(request: Request, body: IdsRequest, db: AsyncSession = Depends(get_db)):
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] Rejecting {len(body.ids)} ingested deals")
    return await PromotionEngine(db).reject_ingested_deals_by_ids(body.ids)
