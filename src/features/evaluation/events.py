"""Progress events emitted by the orchestrator to its listeners."""

from collections.abc import Callable
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from src.features.evaluation.errors import StageError


class Stage(str, Enum):
    """Pipeline stage reported to the presentation layer."""

    UPLOADING = "uploading"
    STARTING = "starting"
    POLLING = "polling"
    AGGREGATING = "aggregating"
    COMPLETED = "completed"
    ERROR = "error"


# Progress reported when a stage begins
STAGE_PROGRESS: dict[Stage, int] = {
    Stage.UPLOADING: 10,
    Stage.STARTING: 30,
    Stage.POLLING: 50,
    Stage.AGGREGATING: 90,
    Stage.COMPLETED: 100,
}


class StageEvent(BaseModel):
    """One status update of an orchestration run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    stage: Stage
    message: str
    progress: Annotated[int, Field(ge=0, le=100)]
    job_id: str | None = None
    error: StageError | None = None


EventListener = Callable[[StageEvent], None]
