"""Event promotion API routes."""

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import Response

from castsales.core.rate_limit import limiter
from castsales.db.session import DbSession
from castsales.models import EventPromotion
from castsales.schemas.sales import EvaluatePromotionRequest, EvaluatePromotionResponse
from castsales.services.sales.promotions import (
    PromotionDefinition,
    achievements_to_csv,
    evaluate_receipts,
    promotion_stats,
)
from castsales.services.sales.repository import SqlAlchemySalesRepository

router = APIRouter()


@router.post("/{promotion_id}/evaluate", response_model=EvaluatePromotionResponse)
@limiter.limit("60/minute")
def evaluate_promotion(
    request: Request,
    promotion_id: int,
    body: EvaluatePromotionRequest,
    db: DbSession,
    format: str = Query("json", pattern="^(json|csv)$"),
):
    """Evaluate receipts against a promotion's reward thresholds."""
    promotion = db.query(EventPromotion).filter(EventPromotion.id == promotion_id).first()
    if not promotion:
        raise HTTPException(status_code=404, detail="Promotion not found")

    definition = PromotionDefinition.from_model(promotion)
    rates = SqlAlchemySalesRepository(db).get_store_rates(promotion.store_id)
    achievements = evaluate_receipts([r.to_record() for r in body.receipts], definition, rates.tax_rate)

    if format == "csv":
        return Response(
            content=achievements_to_csv(achievements).encode("utf-8"),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=promotion_{promotion_id}.csv"},
        )

    return {
        "promotion_id": promotion.id,
        "promotion_name": promotion.name,
        "achievements": achievements,
        "stats": promotion_stats(achievements),
    }
