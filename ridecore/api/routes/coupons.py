"""
Coupon endpoints
================

POST /coupon/apply   -- rider applies a promo code to an accepted ride
POST /coupon/remove  -- rider removes it again before the ride starts
GET  /coupon/active  -- promotions currently on offer
"""

from fastapi import APIRouter, Depends, Request

from ridecore.api.dependencies import current_rider, get_promotion_service
from ridecore.api.middleware import limiter
from ridecore.api.schemas import (
    CouponApplyResponse,
    CouponRequest,
    PromoDetails,
    PromotionResponse,
    RideResponse,
)
from ridecore.config import settings
from ridecore.services.promotions import PromotionService

router = APIRouter(prefix="/coupon", tags=["coupons"])


@router.post(
    "/apply",
    response_model=CouponApplyResponse,
    summary="Apply a promo code",
    responses={400: {"description": "Already applied, ineligible or cap reached."}},
)
@limiter.limit(settings.rate_limit)
async def apply_coupon(
    request: Request,
    body: CouponRequest,
    rider_id: str = Depends(current_rider),
    service: PromotionService = Depends(get_promotion_service),
):
    ride, application = await service.apply(body.ride_id, body.code, rider_id)
    return CouponApplyResponse(
        discount=float(application.discount),
        final_fare=float(ride.fare),
        promo_details=PromoDetails.from_application(application),
    )


@router.post("/remove", response_model=RideResponse, summary="Remove a promo code")
@limiter.limit(settings.rate_limit)
async def remove_coupon(
    request: Request,
    body: CouponRequest,
    rider_id: str = Depends(current_rider),
    service: PromotionService = Depends(get_promotion_service),
):
    return RideResponse.from_ride(await service.remove(body.ride_id, body.code, rider_id))


@router.get(
    "/active", response_model=list[PromotionResponse], summary="Active promotions"
)
@limiter.limit(settings.rate_limit)
async def active_coupons(
    request: Request,
    service: PromotionService = Depends(get_promotion_service),
):
    return [PromotionResponse.from_promotion(p) for p in await service.list_active()]
