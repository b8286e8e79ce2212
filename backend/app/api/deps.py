from __future__ import annotations

from dataclasses import dataclass
from typing import Generator

from fastapi import Header, HTTPException

from backend.app.db.session import SessionLocal


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@dataclass(frozen=True)
class Actor:
    user_id: int
    tenant_id: str


def get_actor(
    actor_id: int | None = Header(default=None, alias="X-Actor-Id"),
    tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
) -> Actor:
    # Auth/session hors périmètre : la passerelle injecte ces headers
    if actor_id is None or not tenant_id or not tenant_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Actor-Id / X-Tenant-Id headers")
    return Actor(user_id=actor_id, tenant_id=tenant_id.strip())
