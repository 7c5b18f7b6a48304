import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

import db
from app.services import reminders as reminder_service
from app.types.errors import InvalidSchedule, InvalidTimezone, NotFound, StoreUnavailable
from app.types.reminder import Reminder
from app.types.schedule import describe_schedule
from config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=settings.LOG_LEVEL
)
_LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Reminder Engine")

# --------------------------------------------
# Store dependency (lazily built, one per process)
# --------------------------------------------
_store: Optional[db.ReminderStore] = None

def get_store() -> db.ReminderStore:
    global _store
    if _store is None:
        _store = db.build_store(settings)
    return _store

@app.on_event("shutdown")
async def shutdown_event():
    global _store
    if _store is not None:
        await _store.close()
        _store = None

# --------------------------------------------
# Error mapping
# --------------------------------------------
@app.exception_handler(InvalidSchedule)
@app.exception_handler(InvalidTimezone)
async def invalid_request_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=422, content={"detail": str(exc)})

@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": "no such reminder"})

@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    _LOGGER.error("Store unavailable: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": "store temporarily unavailable"}
    )

# --------------------------------------------
# Request bodies
# --------------------------------------------
class CreateReminderBody(BaseModel):
    text: str = Field(min_length=1)
    schedule: Dict[str, Any]
    timezone: Optional[str] = None

class RetimezoneBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timezone: str

class TimezoneBody(RetimezoneBody):
    update_existing: bool = False

def _out(reminder: Reminder) -> Dict[str, Any]:
    data = reminder.model_dump(mode="json")
    data["description"] = describe_schedule(reminder.schedule)
    return data

# --------------------------------------------
# Endpoints
# --------------------------------------------
@app.post("/v1/owners/{owner_id}/reminders", status_code=status.HTTP_201_CREATED)
async def create_reminder(owner_id: str, body: CreateReminderBody, store: db.ReminderStore = Depends(get_store)):
    created = await reminder_service.create_reminder(
        store, owner_id, body.text, body.schedule, timezone=body.timezone
    )
    return {"reminder_ids": [r.id for r in created], "reminders": [_out(r) for r in created]}

@app.get("/v1/owners/{owner_id}/reminders")
async def list_reminders(owner_id: str, store: db.ReminderStore = Depends(get_store)):
    return {"reminders": [_out(r) for r in await reminder_service.list_reminders(store, owner_id)]}

@app.get("/v1/owners/{owner_id}/reminders/{reminder_id}")
async def get_reminder(owner_id: str, reminder_id: str, store: db.ReminderStore = Depends(get_store)):
    return _out(await store.get(owner_id, reminder_id))

@app.delete("/v1/owners/{owner_id}/reminders/{reminder_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reminder(owner_id: str, reminder_id: str, store: db.ReminderStore = Depends(get_store)):
    await reminder_service.delete_reminder(store, owner_id, reminder_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@app.post("/v1/owners/{owner_id}/reminders/retimezone")
async def retimezone(owner_id: str, body: RetimezoneBody, store: db.ReminderStore = Depends(get_store)):
    updated = await reminder_service.bulk_retimezone(store, owner_id, body.timezone)
    return {"timezone": body.timezone, "updated": updated}

@app.get("/v1/owners/{owner_id}/timezone")
async def get_timezone(owner_id: str, store: db.ReminderStore = Depends(get_store)):
    return {"timezone": await reminder_service.owner_timezone(store, owner_id)}

@app.put("/v1/owners/{owner_id}/timezone")
async def put_timezone(owner_id: str, body: TimezoneBody, store: db.ReminderStore = Depends(get_store)):
    updated = await reminder_service.set_owner_timezone(
        store, owner_id, body.timezone, update_existing=body.update_existing
    )
    return {"timezone": body.timezone, "updated": updated}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}
