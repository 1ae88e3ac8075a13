import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import AwareDatetime, BaseModel, Field

from cogniflow.application.utils.time import utcnow
from cogniflow.consts import VERSION
from cogniflow.domain.constants import (
    DEFAULT_NEW_ITEMS_PER_DAY,
    DEFAULT_RETENTION,
    DEFAULT_SIMULATION_DAYS,
)
from cogniflow.domain.errors import (
    ConflictUnresolvedError,
    StaleBaselineError,
    ValidationError,
)
from cogniflow.domain.models import Snapshot
from cogniflow.domain.sync.models import (
    EntityKind,
    MergeReport,
    ResolutionChoice,
    Section,
    UserResolution,
)
from cogniflow.infrastructure.serialization import decode_snapshot, snapshot_to_dict

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cogniflow.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"CogniFlow Server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("CogniFlow Server shutting down...")


app = FastAPI(
    title="CogniFlow Server",
    description="Scheduling, workload simulation and snapshot merge service.",
    version=VERSION,
    lifespan=lifespan,
)


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


def _decode(raw: dict[str, Any] | None, label: str) -> Snapshot | None:
    if raw is None:
        return None
    try:
        return decode_snapshot(raw)
    except ValidationError as e:
        raise HTTPException(
            status_code=422, detail={"snapshot": label, "problems": e.problems}
        ) from e


# ---------- Due items ----------


class DueRequest(BaseModel):
    snapshot: dict[str, Any]
    now: AwareDatetime | None = None
    deck_id: str | None = None


class DueItemResponse(BaseModel):
    deck_id: str
    item_id: str
    due_date: datetime
    interval: int


@app.post("/due", response_model=list[DueItemResponse])
async def list_due(req: DueRequest):
    """Items due by the end of ``now``'s day."""
    from cogniflow.application.scheduling import due_items

    snapshot = _decode(req.snapshot, "snapshot")
    entries = due_items(snapshot, req.now or utcnow(), deck_id=req.deck_id)
    return [
        DueItemResponse(
            deck_id=e.deck_id, item_id=e.item.id, due_date=e.item.due_date, interval=e.item.interval
        )
        for e in entries
    ]


# ---------- Simulation ----------


class SimulateRequest(BaseModel):
    snapshot: dict[str, Any]
    deck_id: str | None = None
    days: int = Field(default=DEFAULT_SIMULATION_DAYS, ge=0)
    new_items_per_day: int = Field(default=DEFAULT_NEW_ITEMS_PER_DAY, ge=0)
    retention: float = Field(default=DEFAULT_RETENTION, ge=0.0, le=1.0)
    seed: int | None = None
    now: AwareDatetime | None = None


class SimulationDayResponse(BaseModel):
    day: int
    date: str
    review_count: int
    new_count: int
    total_load: int
    mean_mastery: float


class SimulateResponse(BaseModel):
    days: list[SimulationDayResponse]
    peak_load: int
    peak_day: int | None
    mean_load: float


@app.post("/simulate", response_model=SimulateResponse)
async def run_simulation(req: SimulateRequest):
    """Project the review workload of a collection (or one deck)."""
    from cogniflow.application.scheduling import simulate, summarize

    snapshot = _decode(req.snapshot, "snapshot")
    items = [
        it
        for d in snapshot.decks
        if not d.is_deleted and (req.deck_id is None or d.id == req.deck_id)
        for it in d.items
    ]
    projection = simulate(
        items, req.days, req.new_items_per_day, req.retention, req.now or utcnow(), seed=req.seed
    )
    summary = summarize(projection)
    return SimulateResponse(
        days=[
            SimulationDayResponse(
                day=d.day,
                date=d.date.isoformat(),
                review_count=d.review_count,
                new_count=d.new_count,
                total_load=d.total_load,
                mean_mastery=d.mean_mastery,
            )
            for d in projection
        ],
        peak_load=summary.peak_load,
        peak_day=summary.peak_day,
        mean_load=summary.mean_load,
    )


# ---------- Diff / Merge ----------


class DiffRequest(BaseModel):
    local: dict[str, Any]
    remote: dict[str, Any] | None = None
    baseline: dict[str, Any] | None = None
    remote_modified_time: AwareDatetime | None = None


class ResolutionModel(BaseModel):
    kind: EntityKind
    entity_id: str
    choice: ResolutionChoice


class MergeRequest(DiffRequest):
    resolutions: list[ResolutionModel] = Field(default_factory=list)
    now: AwareDatetime | None = None


def _summary(entity) -> dict[str, Any] | None:
    if entity is None:
        return None
    if isinstance(entity, Section):
        return {"value": entity.value}
    return {
        "name": entity.name,
        "deleted": entity.is_deleted,
        "last_modified": entity.last_modified,
    }


def _run_diff(req: DiffRequest) -> MergeReport:
    from cogniflow.application.sync import diff

    local = _decode(req.local, "local")
    remote = _decode(req.remote, "remote")
    baseline = _decode(req.baseline, "baseline")
    try:
        return diff(local, remote, baseline, req.remote_modified_time)
    except StaleBaselineError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@app.post("/diff")
async def diff_snapshots(req: DiffRequest):
    """Classify every deck and series as unchanged, changed on one side, or conflicting."""
    report = _run_diff(req)
    return {
        "changes": [
            {
                "kind": c.kind.value,
                "entity_id": c.entity_id,
                "change": c.change.value,
                "side": c.side.value,
            }
            for c in report.changes
        ],
        "conflicts": [
            {
                "kind": c.kind.value,
                "entity_id": c.entity_id,
                "local": _summary(c.local),
                "remote": _summary(c.remote),
            }
            for c in report.conflicts
        ],
        "unchanged": len(report.unchanged_decks)
        + len(report.unchanged_series)
        + len(report.unchanged_sections),
    }


@app.post("/merge")
async def merge_snapshots(req: MergeRequest):
    """Diff and merge in one call; every conflict needs a resolution."""
    from cogniflow.application.sync import merge

    report = _run_diff(req)
    resolutions = [UserResolution(r.kind, r.entity_id, r.choice) for r in req.resolutions]
    try:
        merged = merge(report, resolutions, req.now or utcnow())
    except ConflictUnresolvedError as e:
        raise HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "unresolved": [{"kind": k, "entity_id": i} for k, i in e.unresolved],
            },
        ) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"snapshot": snapshot_to_dict(merged)}
