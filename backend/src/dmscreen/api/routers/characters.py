from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from dmscreen.api.deps import get_identity
from dmscreen.api.schemas import CharacterCreate, CharacterData, CharacterOut, CharacterUpdate
from dmscreen.core.engine.state import Identity
from dmscreen.db.deps import get_db
from dmscreen.db.models import Campaign, Character

router = APIRouter(prefix="/characters", tags=["characters"])


def _out(c: Character) -> CharacterOut:
    return CharacterOut(
        id=c.id,
        name=c.name,
        owner_id=c.owner_id,
        campaign_id=c.campaign_id,
        data=CharacterData.model_validate(c.data_json),
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


def _check_campaign(db: Session, campaign_id: Optional[str]) -> None:
    if campaign_id is not None and db.get(Campaign, campaign_id) is None:
        raise HTTPException(status_code=404, detail="Campaign not found")


@router.get("", response_model=list[CharacterOut])
def list_characters(campaign_id: Optional[str] = None, db: Session = Depends(get_db)):
    q = db.query(Character)
    if campaign_id is not None:
        q = q.filter(Character.campaign_id == campaign_id)
    return [_out(c) for c in q.order_by(Character.created_at.desc()).all()]


@router.post("", response_model=CharacterOut)
def create_character(
    payload: CharacterCreate,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    _check_campaign(db, payload.campaign_id)
    obj = Character(
        name=payload.name,
        owner_id=identity.user_id,
        campaign_id=payload.campaign_id,
        data_json=payload.data.model_dump(by_alias=True),
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return _out(obj)


@router.get("/{character_id}", response_model=CharacterOut)
def get_character(character_id: str, db: Session = Depends(get_db)):
    obj = db.get(Character, character_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Character not found")
    return _out(obj)


@router.patch("/{character_id}", response_model=CharacterOut)
def patch_character(
    character_id: str, payload: CharacterUpdate, db: Session = Depends(get_db)
):
    obj = db.get(Character, character_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Character not found")

    if payload.name is not None:
        obj.name = payload.name
    if payload.campaign_id is not None:
        _check_campaign(db, payload.campaign_id)
        obj.campaign_id = payload.campaign_id
    if payload.data is not None:
        obj.data_json = payload.data.model_dump(by_alias=True)

    db.add(obj)
    db.commit()
    db.refresh(obj)
    return _out(obj)
