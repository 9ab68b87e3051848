"""Meta Ads and Google Ads change-notification handlers.

Each event upserts the campaign / ad set / ad it names into `ad_entities`;
removal events mark the row REMOVED instead of deleting it.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Optional

from sqlalchemy.orm import Session

from ...models import AdEntity, LevelEnum, PlatformEnum
from .events import WebhookEvent

logger = logging.getLogger(__name__)

REMOVED_STATUS = "REMOVED"


def upsert_ad_entity(
    db: Session,
    event: WebhookEvent,
    *,
    platform: PlatformEnum,
    level: LevelEnum,
    id_key: str,
    parent_key: Optional[str] = None,
    removed: bool = False,
) -> None:
    external_id = str(event.require(id_key))
    entity = (
        db.query(AdEntity)
        .filter(
            AdEntity.agency_id == event.agency_id,
            AdEntity.platform == platform,
            AdEntity.account_id == event.account_id,
            AdEntity.external_id == external_id,
        )
        .first()
    )
    if entity is None:
        entity = AdEntity(
            agency_id=event.agency_id,
            platform=platform,
            account_id=event.account_id,
            level=level,
            external_id=external_id,
        )
        db.add(entity)

    data = event.data
    if parent_key and data.get(parent_key):
        entity.parent_external_id = str(data[parent_key])
    if data.get("name"):
        entity.name = data["name"]
    if removed:
        entity.status = REMOVED_STATUS
    elif data.get("status") or data.get("effective_status"):
        entity.status = data.get("status") or data.get("effective_status")

    logger.info(
        "[WEBHOOK] %s %s %s -> %s",
        platform.value, level.value, external_id, entity.status or "updated",
    )


_meta = partial(upsert_ad_entity, platform=PlatformEnum.meta_ads)
_google = partial(upsert_ad_entity, platform=PlatformEnum.google_ads)

META_HANDLERS = {
    "AD_CREATED": partial(_meta, level=LevelEnum.ad, id_key="ad_id", parent_key="adset_id"),
    "AD_UPDATED": partial(_meta, level=LevelEnum.ad, id_key="ad_id", parent_key="adset_id"),
    "AD_REMOVED": partial(_meta, level=LevelEnum.ad, id_key="ad_id", parent_key="adset_id", removed=True),
    "ADSET_UPDATED": partial(_meta, level=LevelEnum.adset, id_key="adset_id", parent_key="campaign_id"),
    "CAMPAIGN_UPDATED": partial(_meta, level=LevelEnum.campaign, id_key="campaign_id"),
}

GOOGLE_HANDLERS = {
    "CAMPAIGN_CREATED": partial(_google, level=LevelEnum.campaign, id_key="campaign_id"),
    "CAMPAIGN_UPDATED": partial(_google, level=LevelEnum.campaign, id_key="campaign_id"),
    "CAMPAIGN_REMOVED": partial(_google, level=LevelEnum.campaign, id_key="campaign_id", removed=True),
}
