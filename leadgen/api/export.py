# leadgen/api/export.py
from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from leadgen.api.deps import get_store
from leadgen.db import LeadStore
from leadgen.export.csv_export import iter_csv

router = APIRouter(prefix="/export", tags=["export"])


@router.get("/csv/{file_id}")
def export_csv(file_id: str, store: Annotated[LeadStore, Depends(get_store)]):
    leads = store.list_leads(file_id)
    if not leads:
        raise HTTPException(status_code=404, detail="No leads found for this file")
    return StreamingResponse(
        iter_csv(leads),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="leads_{file_id}.csv"'},
    )
