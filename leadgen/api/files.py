# leadgen/api/files.py
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from leadgen.api.deps import get_store
from leadgen.db import LeadStore

log = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["files"])


class CreateFileRequest(BaseModel):
    name: str | None = None


@router.get("")
def list_files(store: Annotated[LeadStore, Depends(get_store)]) -> list[dict]:
    return [asdict(f) for f in store.list_files()]


@router.post("")
def create_file(
    body: CreateFileRequest, store: Annotated[LeadStore, Depends(get_store)]
) -> dict:
    name = (body.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="File name is required")
    f = store.create_file(name)
    log.info("file created", extra={"file_id": f.id, "file_name": f.name})
    return asdict(f)
