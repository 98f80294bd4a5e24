"""Scheduler-facing trigger for notification runs."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

from cosmic_dispatch.config import Settings, get_settings
from cosmic_dispatch.notifications.contracts import NotificationEvent
from cosmic_dispatch.notifications.service import DispatchEngine, RunState

router = APIRouter()
logger = logging.getLogger(__name__)


class DispatchEventRequest(BaseModel):
  """Event descriptor posted by the scheduler."""

  name: StrictStr = Field(min_length=1, max_length=200)
  type: StrictStr = Field(min_length=1, max_length=64)
  priority: StrictInt
  planet: StrictStr | None = None
  sign: StrictStr | None = None
  planet_a: StrictStr | None = Field(default=None, alias="planetA")
  planet_b: StrictStr | None = Field(default=None, alias="planetB")
  aspect: StrictStr | None = None
  energy: StrictStr | None = None
  description: StrictStr | None = Field(default=None, max_length=500)
  key_suffix: StrictStr = Field(default="", alias="keySuffix", max_length=64)
  sent_by: Literal["daily", "4-hourly", "manual"] = Field(default="daily", alias="sentBy")
  model_config = ConfigDict(extra="forbid", populate_by_name=True)

  def to_event(self) -> NotificationEvent:
    return NotificationEvent(
      name=self.name,
      type=self.type,
      priority=self.priority,
      planet=self.planet,
      sign=self.sign,
      planet_a=self.planet_a,
      planet_b=self.planet_b,
      aspect=self.aspect,
      energy=self.energy,
      description=self.description,
      key_suffix=self.key_suffix,
    )


def get_dispatch_engine(request: Request) -> DispatchEngine:
  """Return the engine built by the lifespan for this process."""
  runtime = getattr(request.app.state, "dispatch_runtime", None)
  if runtime is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Dispatch runtime is not initialized.")
  return runtime.engine


def require_cron_secret(settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None), x_cron_secret: str | None = Header(default=None)) -> None:
  """Reject callers that do not present the shared scheduler secret."""
  # Secure-by-default: an unset secret disables the trigger instead of opening it.
  if not settings.cron_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cron authentication is not configured.")
  header_valid = secrets.compare_digest((x_cron_secret or ""), settings.cron_secret)
  bearer_valid = secrets.compare_digest((authorization or ""), f"Bearer {settings.cron_secret}")
  if not header_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to the notification trigger")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid cron secret.")


@router.post("/notifications", dependencies=[Depends(require_cron_secret)])
async def trigger_notification_run(payload: DispatchEventRequest, engine: Annotated[DispatchEngine, Depends(get_dispatch_engine)]) -> JSONResponse:
  """Run one dispatch for the posted event and return the run summary."""
  logger.info("Received %s trigger for event type=%s name=%s", payload.sent_by, payload.type, payload.name)
  result = await engine.run(payload.to_event(), sent_by=payload.sent_by)
  body: dict[str, Any] = result.to_dict()

  if result.state is RunState.INVALID:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)
  if not result.success:
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)
  return JSONResponse(status_code=status.HTTP_200_OK, content=body)
