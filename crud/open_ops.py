# crud/open_ops.py

from typing import Optional

from sqlalchemy.orm import Session

import models
from schemas import OpenOpsSet
from utils import now_utc


def get_open_ops_document(db: Session) -> Optional[models.OpenOpsDocument]:
    return db.query(models.OpenOpsDocument).order_by(models.OpenOpsDocument.uploaded_at.desc()).first()


def get_open_ops(db: Session) -> Optional[OpenOpsSet]:
    doc = get_open_ops_document(db)
    if doc is None:
        return None
    return OpenOpsSet(ops_numbers=list(doc.ops_numbers or []), max_sequence=doc.max_sequence or 0)


def replace_open_ops(
    db: Session,
    ops_set: OpenOpsSet,
    file_name: Optional[str] = None,
    uploaded_by: Optional[str] = None,
) -> models.OpenOpsDocument:
    """Only the latest export matters; older documents are dropped."""
    db.query(models.OpenOpsDocument).delete(synchronize_session=False)
    doc = models.OpenOpsDocument(
        ops_numbers=list(ops_set.ops_numbers),
        max_sequence=ops_set.max_sequence,
        file_name=file_name,
        uploaded_by=uploaded_by,
        uploaded_at=now_utc(),
    )
    db.add(doc)
    db.commit()
    db.refresh(doc)
    return doc
