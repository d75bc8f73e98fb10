from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from dmscreen.api.deps import get_identity
from dmscreen.api.schemas import CampaignCreate, CampaignOut
from dmscreen.core.engine.state import Identity
from dmscreen.db.deps import get_db
from dmscreen.db.models import Campaign

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


def _out(c: Campaign) -> CampaignOut:
    return CampaignOut(
        id=c.id,
        name=c.name,
        description=c.description,
        dungeon_master_id=c.dungeon_master_id,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


@router.get("", response_model=list[CampaignOut])
def list_campaigns(db: Session = Depends(get_db)):
    items = db.query(Campaign).order_by(Campaign.created_at.desc()).all()
    return [_out(c) for c in items]


@router.get("/{campaign_id}", response_model=CampaignOut)
def get_campaign(campaign_id: str, db: Session = Depends(get_db)):
    obj = db.get(Campaign, campaign_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return _out(obj)


@router.post("", response_model=CampaignOut)
def create_campaign(
    payload: CampaignCreate,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    # создатель кампании - её мастер
    obj = Campaign(
        name=payload.name,
        description=payload.description,
        dungeon_master_id=identity.user_id,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return _out(obj)
