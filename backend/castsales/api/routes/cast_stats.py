"""Cast daily stats API routes: recalculation and finalization."""

import logging
from typing import Union

from fastapi import APIRouter, HTTPException, Request

from castsales.core.rate_limit import limiter
from castsales.db.session import DbSession
from castsales.schemas.sales import (
    FinalizeRequest,
    FinalizeResponse,
    RecalculateRequest,
    RecalculationRangeResponse,
    RecalculationResultResponse,
)
from castsales.services.sales.recalculation import (
    recalculate_for_date,
    recalculate_range,
    set_finalized,
)
from castsales.services.sales.repository import SalesPersistenceError, SqlAlchemySalesRepository

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/recalculate", response_model=Union[RecalculationResultResponse, RecalculationRangeResponse])
@limiter.limit("30/minute")
def recalculate(request: Request, body: RecalculateRequest, db: DbSession):
    """Recalculate cast daily items and stats for one day or a date range.

    Engine failures come back as ``success: false`` rather than an HTTP error.
    """
    repository = SqlAlchemySalesRepository(db)
    if body.date is not None:
        return recalculate_for_date(repository, body.store_id, body.date).to_dict()

    try:
        results = recalculate_range(repository, body.store_id, body.date_from, body.date_to)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"results": [r.to_dict() for r in results]}


@router.post("/finalize", response_model=FinalizeResponse)
@limiter.limit("30/minute")
def finalize(request: Request, body: FinalizeRequest, db: DbSession):
    """Lock (or unlock) cast daily stats so recalculation leaves them alone."""
    try:
        count = set_finalized(db, body.store_id, body.date_from, body.date_to, finalized=not body.unfinalize)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SalesPersistenceError as e:
        logger.error(f"Finalization failed for store {body.store_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update finalization")

    return {
        "success": True,
        "action": "unfinalize" if body.unfinalize else "finalize",
        "recordsUpdated": count,
    }
