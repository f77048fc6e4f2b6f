"""Cron types."""

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel as _BaseModel, ConfigDict, Field, field_validator

# Run history is capped; older attempts are dropped silently.
RUN_HISTORY_LIMIT = 10

DEFAULT_AGENT_ID = "default"
DEFAULT_WAKE_MODE = "Next heartbeat"
DEFAULT_PAYLOAD_TYPE = "System event"


class BaseModel(_BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RunRecord(BaseModel):
    """One dispatch attempt."""
    timestamp: datetime
    status: Literal["ok", "error"]
    error: Optional[str] = None


class CronJob(BaseModel):
    """A scheduled message."""
    id: str
    name: str
    description: Optional[str] = None
    agent_id: str = Field(DEFAULT_AGENT_ID, alias="agentId")
    # 5-field cron expression, evaluated in UTC
    schedule: str
    # Conversation the message is sent to (Telegram chat id)
    target: str = Field(validation_alias=AliasChoices("target", "chatId"))
    message: str
    enabled: bool = True
    wake_mode: str = Field(DEFAULT_WAKE_MODE, alias="wakeMode")
    payload_type: str = Field(DEFAULT_PAYLOAD_TYPE, alias="payloadType")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    last_run: Optional[datetime] = Field(None, alias="lastRun")
    run_history: List[RunRecord] = Field(default_factory=list, alias="runHistory")
    # Projected from the timer manager on read, never stored
    next_run: Optional[datetime] = Field(None, alias="nextRun")

    @field_validator("target", mode="before")
    @classmethod
    def _coerce_target(cls, value: Any) -> Any:
        # Telegram chat ids usually arrive as JSON numbers
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def to_api(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
