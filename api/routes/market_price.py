"""Market price write-back endpoint (Admin only)."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.auth import Session, require_admin
from services.vehicle_service import VehicleService, get_vehicle_service

router = APIRouter(prefix="/api/market-price", tags=["Market Price"])


class MarketPriceUpdateRequest(BaseModel):
    """Body of a market price update. Values are range-checked by the service."""

    vehicleId: Optional[Any] = None
    marketData: Optional[Dict[str, Any]] = None


@router.post("/update")
async def update_market_price(
    request: MarketPriceUpdateRequest,
    session: Session = Depends(require_admin),
    service: VehicleService = Depends(get_vehicle_service),
):
    """Store market price data on the vehicle row; the caller becomes ``updatedBy``."""
    data = await service.update_market_price(
        request.vehicleId,
        request.marketData,
        updated_by=session.username,
    )
    return {"ok": True, "data": data}
