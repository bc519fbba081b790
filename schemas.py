# schemas.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel

# =========================
# Base model configurations
# =========================

class ORMBase(BaseModel):
    """Base for models mapped to SQLAlchemy objects."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, alias_generator=to_camel)

class APIBase(BaseModel):
    """Base for API payloads; serialized with camelCase keys."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class Company(str, Enum):
    EMPL = "EMPL"  # live source
    EHI = "EHI"  # mirrored source


class CompanyScope(str, Enum):
    ALL = "all"
    EMPL = "EMPL"
    EHI = "EHI"


class WIPFilters(APIBase):
    company: CompanyScope = CompanyScope.ALL
    buyer: Optional[str] = None
    search: Optional[str] = None

    def includes(self, company: Company) -> bool:
        return self.company == CompanyScope.ALL or self.company.value == company.value


# ======================================================
# WIP records
# ======================================================

STAGE_FIELDS = ("on_loom", "bazar_pcs", "finishing_pcs", "fg_godown_pcs", "packed_pcs", "dispatched_pcs")


class StageCounts(APIBase):
    total_pcs: int = Field(0, ge=0)
    on_loom: int = Field(0, ge=0)
    bazar_pcs: int = Field(0, ge=0)
    finishing_pcs: int = Field(0, ge=0)
    fg_godown_pcs: int = Field(0, ge=0)
    packed_pcs: int = Field(0, ge=0)
    dispatched_pcs: int = Field(0, ge=0)

    @property
    def tracked_pcs(self) -> int:
        return sum(getattr(self, name) for name in STAGE_FIELDS)

    @computed_field(alias="untrackedPcs")
    @property
    def untracked_pcs(self) -> int:
        return self.total_pcs - self.tracked_pcs

    @model_validator(mode="after")
    def _stages_within_total(self):
        if self.tracked_pcs > self.total_pcs:
            raise ValueError(f"stage counts ({self.tracked_pcs}) exceed total_pcs ({self.total_pcs})")
        return self


class WIPRecord(StageCounts):
    """One order line item, normalized from either source."""
    company: Company
    ops_no: str
    buyer_code: str = ""
    buyer_name: str = ""
    design: str = ""
    size: str = ""
    color: str = ""
    quality: str = ""
    folio_no: Optional[str] = None
    contractor: Optional[str] = None


class WIPGroup(StageCounts):
    """All items of one (company, OPS number)."""
    company: Company
    ops_no: str
    buyer_code: str = ""
    buyer_name: str = ""
    item_count: int = 0
    is_open: bool = True
    items: List[WIPRecord] = Field(default_factory=list)


class CompanyTotals(APIBase):
    orders: int = 0
    pcs: int = 0


class WIPSummary(APIBase):
    total_orders: int = 0
    total_pcs: int = 0
    on_loom: int = 0
    in_bazar: int = 0
    in_finishing: int = 0
    in_fg_godown: int = 0
    packed: int = 0
    dispatched: int = 0
    untracked: int = 0
    by_company: Dict[str, CompanyTotals] = Field(
        default_factory=lambda: {c.value: CompanyTotals() for c in Company}
    )


# ======================================================
# Source status
# ======================================================

class MirroredSourceStatus(APIBase):
    status: Literal["synced", "stale", "error"]
    last_synced_at: Optional[datetime] = None


class SyncStatus(APIBase):
    live_source: Literal["live", "error"] = "live"
    mirrored_source: MirroredSourceStatus


class WIPResponse(APIBase):
    success: bool = True
    data: List[WIPRecord] = Field(default_factory=list)
    summary: WIPSummary = Field(default_factory=WIPSummary)
    sync_status: SyncStatus
    warnings: List[str] = Field(default_factory=list)


class GroupedWIPResponse(APIBase):
    success: bool = True
    view: Literal["open", "all"] = "open"
    data: List[WIPGroup] = Field(default_factory=list)
    hidden_count: int = 0
    open_ops_loaded: bool = False
    summary: WIPSummary = Field(default_factory=WIPSummary)
    sync_status: SyncStatus
    warnings: List[str] = Field(default_factory=list)


# ======================================================
# Open-ops ground truth
# ======================================================

class OpenOpsSet(APIBase):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, frozen=True)

    ops_numbers: List[str] = Field(default_factory=list)
    max_sequence: int = 0


class OpenOpsDocument(ORMBase):
    ops_numbers: List[str]
    max_sequence: int = 0
    file_name: Optional[str] = None
    uploaded_by: Optional[str] = None
    uploaded_at: datetime


# ======================================================
# Sync runs
# ======================================================

class SyncRun(ORMBase):
    id: int
    sync_type: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    orders_synced: int = 0
    items_synced: int = 0
    units_synced: int = 0
    status: str
    errors: Optional[str] = None


class SyncResult(APIBase):
    run_id: int
    orders_synced: int = 0
    items_synced: int = 0
    units_synced: int = 0
    orphan_units: int = 0
    fallback_units: int = 0
    elapsed_seconds: float = 0.0
