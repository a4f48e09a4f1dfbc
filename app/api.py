"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from app.schemas import (
    BridgeStats,
    PreviewRequest,
    PreviewResult,
    ReloadResponse,
    SubscriptionList,
)
from services.bridge import Bridge, build_default_bridge

router = APIRouter()


def get_bridge() -> Bridge:
    return build_default_bridge()


@router.get(
    "/subscriptions",
    response_model=SubscriptionList,
    summary="List the loaded subscription definitions.",
)
async def list_subscriptions(bridge: Bridge = Depends(get_bridge)) -> SubscriptionList:
    return SubscriptionList(items=bridge.store.specs())


@router.post(
    "/subscriptions/reload",
    response_model=ReloadResponse,
    summary="Re-read subscription definitions and resubscribe.",
)
def reload_subscriptions(bridge: Bridge = Depends(get_bridge)) -> ReloadResponse:
    try:
        subscriptions = bridge.reload()
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    except OSError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"MQTT broker unavailable: {exc}",
        ) from exc
    return ReloadResponse(subscriptions=len(subscriptions))


@router.post(
    "/preview",
    response_model=List[PreviewResult],
    summary="Show the line protocol produced for a message without sending it.",
)
async def preview_message(
    request: PreviewRequest,
    bridge: Bridge = Depends(get_bridge),
) -> List[PreviewResult]:
    return bridge.preview(request.topic, request.payload)


@router.get(
    "/stats",
    response_model=BridgeStats,
    summary="Message and delivery counters.",
)
async def get_stats(bridge: Bridge = Depends(get_bridge)) -> BridgeStats:
    return bridge.stats()


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(bridge: Bridge = Depends(get_bridge)) -> dict[str, str]:
    return {"status": "ok" if bridge.running else "degraded"}
