"""
babylog FastAPI Backend
=======================

Infant-care log with WHO growth percentiles and care reminders.

REST API endpoints:
    POST   /profiles                              Create baby profile
    GET    /profiles                              List profiles
    GET    /profiles/{id}                         Get profile
    DELETE /profiles/{id}                         Delete profile and its records
    POST   /profiles/{id}/entries                 Log a care event
    GET    /profiles/{id}/entries                 List events (optional time range)
    PUT    /profiles/{id}/entries/{entry_id}      Replace an event
    DELETE /profiles/{id}/entries/{entry_id}      Delete an event (returns undo token)
    POST   /profiles/{id}/entries/undo/{token}    Undo a delete
    POST   /profiles/{id}/measurements            Record a measurement
    GET    /profiles/{id}/measurements            List measurements
    POST   /profiles/{id}/sleep                   Record a sleep session
    GET    /profiles/{id}/sleep                   Sleep sessions and totals
    POST   /profiles/{id}/visits                  Schedule a doctor visit
    GET    /profiles/{id}/visits                  Upcoming and completed visits
    PUT    /profiles/{id}/visits/{visit_id}/completed   Mark visit done / not done
    GET    /profiles/{id}/percentiles             Latest WHO percentile per metric
    GET    /profiles/{id}/formula-guide           Formula intake by weight
    GET    /profiles/{id}/reminders               Care reminders
    GET    /profiles/{id}/dosing                  Medication course status
    GET    /profiles/{id}/statistics              Feeding and diaper statistics
    GET    /who/percentile-lines                  WHO reference percentile lines
    GET    /who/percentile                        Estimate a single percentile
    GET    /health                                Health check
"""
import logging
import secrets
import uuid
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date, datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field

from config.settings import (
    AUTH_ENABLED, AUTH_PASSWORD, AUTH_USERNAME, HOST, LOG_LEVEL, PORT,
    REMINDER_TICKER_ENABLED,
)
from babylog.api.scheduler import LoggingNotifier, ReminderTicker
from babylog.ingestion import codec
from babylog.ingestion.store import CareStore, DuplicateRecord, RecordNotFound, UndoExpired
from babylog.models.age import age_in_weeks, format_age
from babylog.models.aggregator import (
    FORMULA_FEEDS_PER_DAY, completed_visits, daily_summary, feeding_summary,
    formula_guide, latest_weight_kg, sleep_stats, upcoming_visits,
)
from babylog.models.data_structures import (
    BabyProfile, DoctorVisit, LogEntry, Measurement, METRICS, SleepSession,
)
from babylog.models.dosing import SCHEDULES, DosingScheduleTracker
from babylog.models.reminders import ReminderConfig, evaluate_reminders
from babylog.models.who_engine import (
    METRIC_UNITS, WHOPercentileEstimator, classify_percentile,
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
METRIC_PATTERN = "^(weight|length|head_circumference)$"
SEX_PATTERN = "^(male|female)$"

# ── Auth ─────────────────────────────────────────────────────────
security = HTTPBasic()

def verify_credentials(credentials: HTTPBasicCredentials = Depends(security)):
    """HTTP Basic Auth, only enforced when AUTH_ENABLED=true."""
    if not AUTH_ENABLED:
        return True
    correct_user = secrets.compare_digest(credentials.username, AUTH_USERNAME)
    correct_pass = secrets.compare_digest(credentials.password, AUTH_PASSWORD)
    if not (correct_user and correct_pass):
        raise HTTPException(
            status_code=401,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return True

# ── Global State ──────────────────────────────────────────────

_store = CareStore()
_estimator = WHOPercentileEstimator()
_reminder_config = ReminderConfig.from_settings()
_trackers = {flag: DosingScheduleTracker(s) for flag, s in SCHEDULES.items()}
_ticker: Optional[ReminderTicker] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the reminder ticker for the lifetime of the app."""
    global _ticker
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if REMINDER_TICKER_ENABLED:
        _ticker = ReminderTicker(_store, LoggingNotifier(), _reminder_config)
        _ticker.start()
    logger.info("babylog API ready")
    yield
    if _ticker is not None:
        await _ticker.stop()
        _ticker = None
    logger.info("Shutting down")


# ── App ──────────────────────────────────────────────────────

_deps = [Depends(verify_credentials)] if AUTH_ENABLED else []

app = FastAPI(
    title="babylog API",
    description=(
        "Infant-care log with feeding, diaper, supplement, sleep and doctor-visit "
        "records, care reminders, and approximate WHO growth percentiles for "
        "infants 0–24 months."
    ),
    version=VERSION,
    lifespan=lifespan,
    dependencies=_deps,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request Models ────────────────────────────────────────────

class CreateProfileRequest(BaseModel):
    id: Optional[str] = Field(None, description="Unique identifier; generated when omitted")
    name: str = Field(..., min_length=1)
    birth_date: datetime
    birth_time: str = Field("", pattern=r"^(\d{2}:\d{2})?$")
    birth_weight_grams: float = Field(0, ge=0, le=10000)
    birth_height_cm: float = Field(0, ge=0, le=80)

class EntryRequest(BaseModel):
    id: Optional[str] = None
    date_time: Optional[datetime] = None
    stool: bool = False
    urination: bool = False
    vomiting: bool = False
    breastfed: bool = False
    vitamin_d: bool = False
    vitamin_c: bool = False
    probiotic: bool = False
    tummy_time: bool = False
    sterilization: bool = False
    bathing: bool = False
    anti_gas_drops: bool = False
    iron_supplement: bool = False
    breast_milk_ml: float = Field(0, ge=0)
    formula_ml: float = Field(0, ge=0)
    tummy_time_seconds: Optional[int] = Field(None, ge=0)
    notes: str = ""

class MeasurementRequest(BaseModel):
    id: Optional[str] = None
    measured_at: Optional[datetime] = None
    weight_grams: float = Field(0, ge=0, le=30000)
    height_cm: float = Field(0, ge=0, le=150)
    head_circumference_cm: float = Field(0, ge=0, le=70)
    notes: str = ""

class SleepRequest(BaseModel):
    id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    notes: str = ""

class VisitRequest(BaseModel):
    id: Optional[str] = None
    visit_date: date
    visit_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    doctor_type: str = Field(..., min_length=1)
    doctor_name: str = ""
    location: str = ""
    notes: str = ""

class CompletedRequest(BaseModel):
    completed: bool


# ── Helpers ───────────────────────────────────────────────────

def _local(dt: Optional[datetime]) -> Optional[datetime]:
    return codec.from_wire_time(dt)


def _now(at: Optional[datetime]) -> datetime:
    return _local(at) if at is not None else datetime.now()


def _new_id(requested: Optional[str]) -> str:
    return requested or uuid.uuid4().hex


def _profile(profile_id: str) -> BabyProfile:
    try:
        return _store.get_profile(profile_id)
    except RecordNotFound:
        raise HTTPException(404, f"Profile '{profile_id}' not found")


def _hours(delta) -> Optional[float]:
    return None if delta is None else round(delta.total_seconds() / 3600, 3)


def _round(val, ndigits=2):
    return None if val is None else round(val, ndigits)


def _entry_from_request(req: EntryRequest, profile_id: str, entry_id: str) -> LogEntry:
    fields = req.model_dump(exclude={'id', 'date_time'})
    return LogEntry(
        id=entry_id,
        baby_profile_id=profile_id,
        date_time=_now(req.date_time),
        **fields,
    )


# ── Health ────────────────────────────────────────────────────

@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "profiles_tracked": len(_store.profiles),
        "entries_stored": len(_store.entries),
        "metrics_available": _estimator.available_metrics,
        "reminder_ticker": _ticker is not None,
        "version": VERSION,
    }


# ── Profiles ──────────────────────────────────────────────────

@app.post("/profiles", status_code=201)
async def create_profile(req: CreateProfileRequest):
    profile = BabyProfile(
        id=_new_id(req.id),
        name=req.name,
        birth_date=_local(req.birth_date),
        birth_time=req.birth_time,
        birth_weight_grams=req.birth_weight_grams,
        birth_height_cm=req.birth_height_cm,
    )
    try:
        _store.add_profile(profile)
    except DuplicateRecord as e:
        raise HTTPException(409, str(e))
    return codec.baby_profile_to_record(profile)


@app.get("/profiles")
async def list_profiles():
    profiles = _store.list_profiles()
    return {
        "count": len(profiles),
        "profiles": [codec.baby_profile_to_record(p) for p in profiles],
    }


@app.get("/profiles/{profile_id}")
async def get_profile(profile_id: str, at: Optional[datetime] = None):
    profile = _profile(profile_id)
    now = _now(at)
    record = codec.baby_profile_to_record(profile)
    record["age"] = format_age(profile.birth_date, now)
    record["age_weeks"] = age_in_weeks(profile.birth_date, now)
    return record


@app.delete("/profiles/{profile_id}", status_code=204)
async def delete_profile(profile_id: str):
    _profile(profile_id)
    _store.delete_profile(profile_id)


# ── Entries ───────────────────────────────────────────────────

@app.post("/profiles/{profile_id}/entries", status_code=201)
async def add_entry(profile_id: str, req: EntryRequest):
    _profile(profile_id)
    entry = _entry_from_request(req, profile_id, _new_id(req.id))
    try:
        _store.add_entry(entry)
    except DuplicateRecord as e:
        raise HTTPException(409, str(e))
    return codec.log_entry_to_record(entry)


@app.get("/profiles/{profile_id}/entries")
async def list_entries(profile_id: str, since: Optional[datetime] = None,
                       until: Optional[datetime] = None):
    _profile(profile_id)
    entries = _store.list_entries(profile_id, _local(since), _local(until))
    return [codec.log_entry_to_record(e) for e in entries]


def _owned_entry(profile_id: str, entry_id: str) -> LogEntry:
    try:
        entry = _store.get_entry(entry_id)
    except RecordNotFound:
        raise HTTPException(404, f"Entry '{entry_id}' not found")
    if entry.baby_profile_id != profile_id:
        raise HTTPException(404, f"Entry '{entry_id}' not found")
    return entry


@app.put("/profiles/{profile_id}/entries/{entry_id}")
async def update_entry(profile_id: str, entry_id: str, req: EntryRequest):
    _profile(profile_id)
    current = _owned_entry(profile_id, entry_id)
    updated = _entry_from_request(req, profile_id, entry_id)
    if req.date_time is None:
        updated = updated.edited(date_time=current.date_time)
    _store.update_entry(updated)
    return codec.log_entry_to_record(updated)


@app.delete("/profiles/{profile_id}/entries/{entry_id}")
async def delete_entry(profile_id: str, entry_id: str):
    _profile(profile_id)
    _owned_entry(profile_id, entry_id)
    token = _store.delete_entry(entry_id)
    return {
        "deleted": entry_id,
        "undo_token": token,
        "undo_window_seconds": _store.undo_window.total_seconds(),
    }


@app.post("/profiles/{profile_id}/entries/undo/{token}", status_code=201)
async def undo_delete_entry(profile_id: str, token: str):
    _profile(profile_id)
    try:
        entry = _store.undo_delete(token, profile_id)
    except RecordNotFound as e:
        raise HTTPException(404, str(e))
    except UndoExpired as e:
        raise HTTPException(410, str(e))
    except DuplicateRecord as e:
        raise HTTPException(409, str(e))
    return codec.log_entry_to_record(entry)


# ── Measurements ──────────────────────────────────────────────

@app.post("/profiles/{profile_id}/measurements", status_code=201)
async def add_measurement(profile_id: str, req: MeasurementRequest):
    _profile(profile_id)
    measurement = Measurement(
        id=_new_id(req.id),
        baby_profile_id=profile_id,
        measured_at=_now(req.measured_at),
        weight_grams=req.weight_grams,
        height_cm=req.height_cm,
        head_circumference_cm=req.head_circumference_cm,
        notes=req.notes,
    )
    try:
        _store.add_measurement(measurement)
    except DuplicateRecord as e:
        raise HTTPException(409, str(e))
    return codec.measurement_to_record(measurement)


@app.get("/profiles/{profile_id}/measurements")
async def list_measurements(profile_id: str):
    _profile(profile_id)
    return [codec.measurement_to_record(m) for m in _store.list_measurements(profile_id)]


# ── Sleep ─────────────────────────────────────────────────────

@app.post("/profiles/{profile_id}/sleep", status_code=201)
async def add_sleep_session(profile_id: str, req: SleepRequest):
    _profile(profile_id)
    start, end = _local(req.start_time), _local(req.end_time)
    if end is not None and end < start:
        raise HTTPException(422, "end_time is before start_time")
    session = SleepSession(
        id=_new_id(req.id),
        baby_profile_id=profile_id,
        start_time=start,
        end_time=end,
        duration_minutes=int((end - start).total_seconds() // 60) if end else None,
        notes=req.notes,
        created_at=datetime.now(),
    )
    try:
        _store.add_sleep_session(session)
    except DuplicateRecord as e:
        raise HTTPException(409, str(e))
    return codec.sleep_session_to_record(session)


@app.get("/profiles/{profile_id}/sleep")
async def get_sleep(profile_id: str):
    _profile(profile_id)
    sessions = _store.list_sleep_sessions(profile_id)
    return {
        "sessions": [codec.sleep_session_to_record(s) for s in sessions],
        "stats": asdict(sleep_stats(sessions)),
    }


# ── Doctor visits ─────────────────────────────────────────────

@app.post("/profiles/{profile_id}/visits", status_code=201)
async def add_visit(profile_id: str, req: VisitRequest):
    _profile(profile_id)
    visit = DoctorVisit(
        id=_new_id(req.id),
        baby_profile_id=profile_id,
        visit_date=req.visit_date,
        visit_time=req.visit_time,
        doctor_type=req.doctor_type,
        doctor_name=req.doctor_name,
        location=req.location,
        notes=req.notes,
        created_at=datetime.now(),
    )
    try:
        _store.add_visit(visit)
    except DuplicateRecord as e:
        raise HTTPException(409, str(e))
    return codec.doctor_visit_to_record(visit)


@app.get("/profiles/{profile_id}/visits")
async def get_visits(profile_id: str, at: Optional[datetime] = None):
    _profile(profile_id)
    visits = _store.list_visits(profile_id)
    return {
        "upcoming": [codec.doctor_visit_to_record(v)
                     for v in upcoming_visits(visits, _now(at))],
        "completed": [codec.doctor_visit_to_record(v) for v in completed_visits(visits)],
    }


@app.put("/profiles/{profile_id}/visits/{visit_id}/completed")
async def set_visit_completed(profile_id: str, visit_id: str, req: CompletedRequest):
    _profile(profile_id)
    visit = _store.visits.get(visit_id)
    if visit is None or visit.baby_profile_id != profile_id:
        raise HTTPException(404, f"Visit '{visit_id}' not found")
    visit.completed = req.completed
    _store.update_visit(visit)
    return codec.doctor_visit_to_record(visit)


# ── Growth percentiles ────────────────────────────────────────

@app.get("/profiles/{profile_id}/percentiles")
async def get_percentiles(profile_id: str,
                          sex: str = Query("male", pattern=SEX_PATTERN)):
    profile = _profile(profile_id)
    measurements = _store.list_measurements(profile_id)
    results = []
    for metric in METRICS:
        latest = _estimator.latest_percentile(
            measurements, profile.birth_date, metric, sex
        )
        if latest is None:
            results.append({"metric": metric, "unit": METRIC_UNITS[metric],
                            "percentile": None, "classification": None})
            continue
        results.append({
            "metric": metric,
            "unit": latest["unit"],
            "measurement_id": latest["measurement_id"],
            "measured_at": codec.to_wire_time(latest["measured_at"]),
            "value": _round(latest["value"], 3),
            "age_months": _round(latest["age_months"]),
            "percentile": _round(latest["percentile"], 1),
            "z_equivalent": _round(_estimator.zscore_equivalent(latest["percentile"]), 3),
            "classification": latest["classification"],
        })
    return {"profile_id": profile_id, "sex": sex,
            "method": "nearest-row linear approximation (not WHO LMS)",
            "percentiles": results}


@app.get("/profiles/{profile_id}/formula-guide")
async def get_formula_guide(profile_id: str):
    _profile(profile_id)
    weight_kg = latest_weight_kg(_store.list_measurements(profile_id))
    return {
        "profile_id": profile_id,
        "current_weight_kg": weight_kg,
        "feeds_per_day": FORMULA_FEEDS_PER_DAY,
        "rows": [asdict(row) for row in formula_guide(weight_kg)],
    }


# ── Reminders & dosing ────────────────────────────────────────

@app.get("/profiles/{profile_id}/reminders")
async def get_reminders(profile_id: str, at: Optional[datetime] = None):
    profile = _profile(profile_id)
    now = _now(at)
    entries = _store.list_entries(profile_id)
    results = evaluate_reminders(entries, now, profile, _reminder_config)
    return {
        "evaluated_at": now.isoformat(),
        "due_count": sum(1 for r in results if r.due_for_attention),
        "reminders": [r.to_dict() for r in results],
    }


@app.get("/profiles/{profile_id}/dosing")
async def get_dosing(profile_id: str, at: Optional[datetime] = None):
    _profile(profile_id)
    now = _now(at)
    entries = _store.list_entries(profile_id)
    return {
        "evaluated_at": now.isoformat(),
        "schedules": {
            flag: tracker.status(entries, now).to_dict()
            for flag, tracker in _trackers.items()
        },
    }


# ── Statistics ────────────────────────────────────────────────

@app.get("/profiles/{profile_id}/statistics")
async def get_statistics(profile_id: str, at: Optional[datetime] = None,
                         window_days: int = Query(7, ge=1, le=90)):
    _profile(profile_id)
    now = _now(at)
    entries = _store.list_entries(profile_id)
    summary = feeding_summary(entries, now, window_days)
    daily = daily_summary(entries)
    daily["date"] = daily["date"].astype(str)
    return {
        "evaluated_at": now.isoformat(),
        "today": asdict(summary["today"]),
        "window": asdict(summary["week"]),
        "window_days": window_days,
        "average_feeding_interval_hours": _hours(summary["average_interval"]),
        "insufficient_interval_data": summary["average_interval"] is None,
        "last_feeding": (summary["last_feeding"].isoformat()
                         if summary["last_feeding"] else None),
        "hours_since_last_feeding": _hours(summary["time_since_last_feeding"]),
        "daily": daily.to_dict(orient="records"),
    }


# ── WHO Reference Lines ──────────────────────────────────────

@app.get("/who/percentile-lines")
async def get_who_percentile_lines(
    metric: str = Query("weight", pattern=METRIC_PATTERN),
    sex: str = Query("male", pattern=SEX_PATTERN),
):
    lines = _estimator.percentile_lines(metric, sex)
    return {
        "metric": metric,
        "sex": sex,
        "unit": METRIC_UNITS[metric],
        "lines": [
            {"percentile": pct,
             "points": [{"age_months": a, "value": v} for a, v in points]}
            for pct, points in lines.items()
        ],
    }


@app.get("/who/percentile")
async def get_who_percentile(
    value: float = Query(...),
    age_months: float = Query(..., description="Ages outside 0-24 use the nearest row"),
    metric: str = Query("weight", pattern=METRIC_PATTERN),
    sex: str = Query("male", pattern=SEX_PATTERN),
):
    row_age, _ = _estimator.get_reference_row(metric, sex, age_months)
    pct = _estimator.estimate_percentile(value, age_months, metric, sex)
    return {
        "metric": metric, "sex": sex, "value": value,
        "age_months": age_months, "reference_age_months": row_age,
        "percentile": _round(pct, 1),
        "classification": classify_percentile(pct),
    }


# ── Run ───────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("babylog.api.server:app", host=HOST, port=PORT, reload=True)
