"""
Ride endpoints
==============

POST /ride                            -- rider requests a ride
GET  /ride/user                       -- rider's rides, newest first
GET  /ride/detail?rideId=             -- one ride (latest when no id)
GET  /ride/driver/rides               -- rides assigned to the driver
POST /ride/accept/{ride_id}           -- driver claims and prices the ride
POST /ride/reject/{ride_id}           -- driver declines
POST /ride/reached/{ride_id}          -- driver is at the pickup point
POST /ride/start/{ride_id}            -- driver starts with the rider's pin
POST /ride/complete/{ride_id}         -- driver completes
POST /ride/cancel/{ride_id}           -- rider, driver or admin cancels
POST /ride/reassign-driver/{ride_id}  -- admin hands the ride to another driver
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ridecore.api.dependencies import (
    current_admin,
    current_caller,
    current_driver,
    current_rider,
    get_ride_service,
)
from ridecore.api.middleware import limiter
from ridecore.api.schemas import (
    CancelRideRequest,
    CompleteRideRequest,
    ReassignDriverRequest,
    RideCreateRequest,
    RideResponse,
    StartRideRequest,
)
from ridecore.config import settings
from ridecore.domain.errors import PermissionDeniedError
from ridecore.services.rides import RideLifecycleService

router = APIRouter(prefix="/ride", tags=["rides"])


def _for_driver(ride) -> RideResponse:
    return RideResponse.from_ride(ride, include_pin=False)


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Request a ride",
    responses={400: {"description": "Rider already has an active ride."}},
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    rider_id: str = Depends(current_rider),
    service: RideLifecycleService = Depends(get_ride_service),
):
    ride = await service.create(
        rider_id,
        pickup=body.pickup.model_dump(),
        drops=[d.model_dump() for d in body.drops],
        vehicle_type=body.vehicle_type,
        payment_mode=body.payment_mode,
    )
    return RideResponse.from_ride(ride)


@router.get("/user", response_model=list[RideResponse], summary="Rider's rides")
@limiter.limit(settings.rate_limit)
async def list_user_rides(
    request: Request,
    rider_id: str = Depends(current_rider),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return [RideResponse.from_ride(r) for r in await service.list_for_rider(rider_id)]


@router.get("/detail", response_model=RideResponse, summary="Ride detail")
@limiter.limit(settings.rate_limit)
async def ride_detail(
    request: Request,
    ride_id: Optional[str] = Query(default=None, alias="rideId"),
    rider_id: str = Depends(current_rider),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return RideResponse.from_ride(await service.detail(rider_id, ride_id))


@router.get(
    "/driver/rides", response_model=list[RideResponse], summary="Driver's rides"
)
@limiter.limit(settings.rate_limit)
async def list_driver_rides(
    request: Request,
    driver_id: str = Depends(current_driver),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return [_for_driver(r) for r in await service.list_for_driver(driver_id)]


@router.post(
    "/accept/{ride_id}",
    response_model=RideResponse,
    summary="Accept a ride",
    responses={409: {"description": "Already assigned or wrong status."}},
)
@limiter.limit(settings.rate_limit)
async def accept_ride(
    request: Request,
    ride_id: str,
    driver_id: str = Depends(current_driver),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return _for_driver(await service.accept(ride_id, driver_id))


@router.post("/reject/{ride_id}", response_model=RideResponse, summary="Reject a ride")
@limiter.limit(settings.rate_limit)
async def reject_ride(
    request: Request,
    ride_id: str,
    driver_id: str = Depends(current_driver),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return _for_driver(await service.reject(ride_id, driver_id))


@router.post(
    "/reached/{ride_id}", response_model=RideResponse, summary="Driver reached pickup"
)
@limiter.limit(settings.rate_limit)
async def driver_reached(
    request: Request,
    ride_id: str,
    driver_id: str = Depends(current_driver),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return _for_driver(await service.mark_reached(ride_id, driver_id))


@router.post(
    "/start/{ride_id}",
    response_model=RideResponse,
    summary="Start a ride",
    responses={400: {"description": "Pin mismatch or driver not at pickup."}},
)
@limiter.limit(settings.rate_limit)
async def start_ride(
    request: Request,
    ride_id: str,
    body: StartRideRequest,
    driver_id: str = Depends(current_driver),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return _for_driver(await service.start(ride_id, driver_id, body.pin))


@router.post(
    "/complete/{ride_id}", response_model=RideResponse, summary="Complete a ride"
)
@limiter.limit(settings.rate_limit)
async def complete_ride(
    request: Request,
    ride_id: str,
    body: CompleteRideRequest,
    driver_id: str = Depends(current_driver),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return _for_driver(await service.complete(ride_id, driver_id, body.payment_mode))


@router.post("/cancel/{ride_id}", response_model=RideResponse, summary="Cancel a ride")
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: str,
    body: CancelRideRequest,
    caller: tuple[str, str] = Depends(current_caller),
    service: RideLifecycleService = Depends(get_ride_service),
):
    role, caller_id = caller
    if role != "admin" and body.cancelled_by != role:
        raise PermissionDeniedError(f"A {role} cannot cancel as {body.cancelled_by}")
    ride = await service.cancel(
        ride_id,
        body.cancelled_by,
        body.reason,
        caller_id=None if role == "admin" else caller_id,
    )
    return RideResponse.from_ride(ride, include_pin=role == "rider")


@router.post(
    "/reassign-driver/{ride_id}",
    response_model=RideResponse,
    summary="Reassign a ride to another driver",
)
@limiter.limit(settings.rate_limit)
async def reassign_driver(
    request: Request,
    ride_id: str,
    body: ReassignDriverRequest,
    admin_id: str = Depends(current_admin),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return _for_driver(await service.reassign(ride_id, body.new_driver_id))
