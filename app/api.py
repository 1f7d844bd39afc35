"""HTTP route definitions for the service."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import ValidationError

from app.schemas import (
    AgreementRecord,
    DeviceRegistration,
    ReloadResponse,
    SpeedUpdate,
    SpeedUpdateResponse,
)
from datastore.agreement_store import AgreementStore
from datastore.device_directory import DeviceDirectory
from models.records import utc_now
from services.errors import InvalidSample
from services.monitor import SpeedMonitor, build_default_monitor

router = APIRouter()


def get_monitor() -> SpeedMonitor:
    return build_default_monitor()


def get_store(monitor: SpeedMonitor = Depends(get_monitor)) -> AgreementStore:
    return monitor.store


def get_directory(monitor: SpeedMonitor = Depends(get_monitor)) -> DeviceDirectory:
    return monitor.dispatcher.directory


@router.post(
    "/telemetry/{asset_id}",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SpeedUpdateResponse,
    summary="Ingest one speed sample for a monitored asset.",
)
def post_speed(
    asset_id: str,
    update: SpeedUpdate,
    monitor: SpeedMonitor = Depends(get_monitor),
) -> SpeedUpdateResponse:
    try:
        outcome = monitor.ingest(asset_id, update.speed)
    except InvalidSample as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    violation = outcome.violation
    return SpeedUpdateResponse(
        asset_id=asset_id,
        speed=outcome.sample.speed,
        received_at=outcome.sample.received_at,
        delivered=outcome.delivered,
        violation=violation is not None,
        message=violation.message if violation else None,
    )


@router.get(
    "/agreements/{asset_id}/active",
    response_model=AgreementRecord,
    summary="Fetch the agreement currently in effect for an asset.",
)
async def get_active_agreement(
    asset_id: str,
    store: AgreementStore = Depends(get_store),
) -> AgreementRecord:
    agreement = store.find_active(asset_id, utc_now())
    if agreement is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No active agreement for asset {asset_id!r}.",
        )
    return AgreementRecord.from_agreement(agreement)


@router.post(
    "/agreements",
    status_code=status.HTTP_201_CREATED,
    response_model=AgreementRecord,
    summary="Provision a single agreement.",
)
async def create_agreement(
    record: AgreementRecord,
    monitor: SpeedMonitor = Depends(get_monitor),
) -> AgreementRecord:
    monitor.store.put(record.to_agreement())
    monitor.watch_known_assets()
    return record


@router.post(
    "/agreements/reload",
    response_model=ReloadResponse,
    summary="Reload agreements from the configured seed file.",
)
async def reload_agreements(
    monitor: SpeedMonitor = Depends(get_monitor),
) -> ReloadResponse:
    try:
        count = monitor.store.reload()
    except (ValidationError, json.JSONDecodeError, OSError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Agreement seed file could not be loaded: {exc}",
        ) from exc
    monitor.watch_known_assets()
    return ReloadResponse(agreement_count=count)


@router.put(
    "/devices/{customer_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Register the push token of a customer's device.",
)
async def register_device(
    customer_id: str,
    registration: DeviceRegistration,
    directory: DeviceDirectory = Depends(get_directory),
) -> Response:
    directory.register(customer_id, registration.token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
