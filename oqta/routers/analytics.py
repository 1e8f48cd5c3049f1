from __future__ import annotations

from fastapi import APIRouter

from oqta.core import config

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/config")
def analytics_config():
    return {
        "yandexMetrikaId": config.YANDEX_METRIKA_ID,
        "gaMeasurementId": config.GA_MEASUREMENT_ID,
    }
