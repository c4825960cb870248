from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.database import commit_or_conflict
from app.funnels.models import Funnel
from app.funnels.schemas import FunnelUpsert
from app.tenancy.models import SubAccount


class FunnelService:
    def list_funnels(self, session: Session, subaccount_id: str) -> list[Funnel]:
        stmt = select(Funnel).where(Funnel.sub_account_id == subaccount_id).order_by(Funnel.created_at.asc())
        return list(session.scalars(stmt).all())

    def get_funnel(self, session: Session, funnel_id: str) -> Funnel | None:
        return session.get(Funnel, funnel_id)

    def upsert_funnel(self, session: Session, subaccount_id: str, dto: FunnelUpsert, funnel_id: str | None = None) -> Funnel:
        funnel = session.get(Funnel, funnel_id) if funnel_id else None
        if funnel is None:
            if session.get(SubAccount, subaccount_id) is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="sub-account not found")
            funnel = Funnel(sub_account_id=subaccount_id)
            if funnel_id:
                funnel.id = funnel_id
            session.add(funnel)

        for key, value in dto.model_dump().items():
            setattr(funnel, key, value)
        # blank subdomains are stored as NULL so the unique index ignores them
        funnel.subdomain = (dto.subdomain or "").strip() or None

        commit_or_conflict(session, "subdomain already in use")
        session.refresh(funnel)
        return funnel

    def update_funnel_products(self, session: Session, funnel_id: str, live_products: str) -> Funnel:
        funnel = session.get(Funnel, funnel_id)
        if funnel is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="funnel not found")
        funnel.live_products = live_products
        session.commit()
        session.refresh(funnel)
        return funnel


funnel_service = FunnelService()
