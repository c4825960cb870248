from __future__ import annotations

import logging

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.core.database import commit_or_conflict
from app.media.models import Media
from app.media.schemas import MediaCreate, MediaRead
from app.tenancy.models import SubAccount


logger = logging.getLogger("app.media")


class MediaService:
    def get_media(self, session: Session, subaccount_id: str) -> SubAccount | None:
        stmt = select(SubAccount).options(selectinload(SubAccount.media)).where(SubAccount.id == subaccount_id)
        return session.scalar(stmt)

    def create_media(self, session: Session, subaccount_id: str, dto: MediaCreate) -> Media:
        if session.get(SubAccount, subaccount_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="sub-account not found")
        media = Media(name=dto.name, link=dto.link, type=dto.type, sub_account_id=subaccount_id)
        session.add(media)
        commit_or_conflict(session, "media link already exists")
        session.refresh(media)
        logger.info("media.created", extra={"subaccount_id": subaccount_id})
        return media

    def delete_media(self, session: Session, media_id: str) -> MediaRead:
        media = session.get(Media, media_id)
        if media is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="media not found")
        snapshot = MediaRead.model_validate(media)
        session.delete(media)
        session.commit()
        return snapshot


media_service = MediaService()
