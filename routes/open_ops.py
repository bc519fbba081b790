# routes/open_ops.py

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from crud import open_ops as crud_open_ops
from database import get_mirror_db
from exceptions import OpenOpsParseError
from schemas import OpenOpsDocument
from services import open_ops_parser

router = APIRouter(
    prefix="/api/open-ops",
    tags=["Open Orders"],
    responses={404: {"description": "Not found"}},
)


def _require_db(db: Optional[Session]) -> Session:
    if db is None:
        raise HTTPException(status_code=503, detail="EHI mirror database is not configured.")
    return db


@router.get("", response_model=OpenOpsDocument)
def get_open_ops(db: Optional[Session] = Depends(get_mirror_db)):
    doc = crud_open_ops.get_open_ops_document(_require_db(db))
    if doc is None:
        raise HTTPException(status_code=404, detail="No open-ops document has been uploaded yet.")
    return doc


@router.post("", response_model=OpenOpsDocument)
def upload_open_ops(
    file: UploadFile = File(...),
    uploaded_by: str = Form("Web"),
    db: Optional[Session] = Depends(get_mirror_db),
):
    """Replace the open-ops document with the OPS numbers in an 'Order Status' export."""
    db = _require_db(db)
    if not (file.filename or "").lower().endswith((".xlsx", ".xlsm")):
        raise HTTPException(status_code=400, detail="Invalid file type. Please upload an .xlsx file.")
    try:
        ops_set = open_ops_parser.load_open_ops_from_excel(file.file)
    except OpenOpsParseError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return crud_open_ops.replace_open_ops(db, ops_set, file_name=file.filename, uploaded_by=uploaded_by)
