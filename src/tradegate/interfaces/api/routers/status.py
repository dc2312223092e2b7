# src/tradegate/interfaces/api/routers/status.py
import logging

from fastapi import APIRouter, Depends, HTTPException

from tradegate.application.services.ledger_service import utc_today
from tradegate.application.services.pipeline_service import AlertPipeline
from tradegate.domain.errors import StoreUnavailable
from tradegate.interfaces.api.deps import get_pipeline, require_api_key
from tradegate.interfaces.api.schemas import HealthOut, PnlAdjustIn, PnlAdjustOut

log = logging.getLogger(__name__)
router = APIRouter(tags=["Status"])


@router.get("/health", response_model=HealthOut)
def health(pipeline: AlertPipeline = Depends(get_pipeline)):
    try:
        return pipeline.status_report()
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Store unavailable")


@router.post("/ledger/pnl", response_model=PnlAdjustOut, dependencies=[Depends(require_api_key)])
def adjust_pnl(body: PnlAdjustIn, pipeline: AlertPipeline = Depends(get_pipeline)):
    try:
        total = pipeline.adjust_pnl(body.delta)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Store unavailable")
    return PnlAdjustOut(day=utc_today().isoformat(), daily_pnl=str(total))
