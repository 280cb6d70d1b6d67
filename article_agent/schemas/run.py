"""Run-related Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from article_agent.schemas.topic import TOPIC_ID_PATTERN


class StageName(str, Enum):
    """Pipeline stages, declared in execution order."""

    RESEARCH = "research"
    OUTLINE = "outline"
    DRAFT = "draft"
    REFINE = "refine"
    EXPORT = "export"


PIPELINE_ORDER: List[StageName] = list(StageName)


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


TERMINAL_STAGE_STATUSES = frozenset(
    {StageStatus.COMPLETED, StageStatus.FAILED, StageStatus.SKIPPED, StageStatus.CANCELLED}
)


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_RUN_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED})


class RunKind(str, Enum):
    GENERATE = "generate"
    REGENERATE = "regenerate"


class GenerationOptions(BaseModel):
    """Caller options for a generation run."""

    skip_research: bool = False
    skip_refinement: bool = False
    stage_timeout: Optional[float] = Field(default=None, gt=0)  # seconds
    dry_run: bool = False
    save_output: bool = True


class TopicRef(BaseModel):
    """Pinned reference to a topic document."""

    topic_id: str = Field(min_length=1, pattern=TOPIC_ID_PATTERN)
    version: str = Field(min_length=1)


class StageRecord(BaseModel):
    """Progress of one stage within a run."""

    name: StageName
    status: StageStatus = StageStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STAGE_STATUSES


class RunRecord(BaseModel):
    """Mutable state of one pipeline execution."""

    id: str
    kind: RunKind = RunKind.GENERATE
    topic_id: str
    topic_version: str
    status: RunStatus = RunStatus.PENDING
    stages: List[StageRecord]
    options: GenerationOptions = GenerationOptions()
    article_id: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES

    def stage(self, name: StageName) -> StageRecord:
        for record in self.stages:
            if record.name == name:
                return record
        raise KeyError(name.value)


class RunFilter(BaseModel):
    """Query over stored runs."""

    topic_id: Optional[str] = None
    status: Optional[RunStatus] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    limit: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)


class RunProgress(BaseModel):
    """Point-in-time view for pollers."""

    run_id: str
    status: RunStatus
    current_stage: Optional[StageName] = None
    progress: int = Field(ge=0, le=100)


class GenerationStats(BaseModel):
    """Aggregate over historical runs."""

    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    cancelled_runs: int = 0
    average_duration_seconds: float = 0.0
    by_topic: Dict[str, int] = {}


# API payloads


class GenerateRequest(BaseModel):
    """Body of POST /articles/generate."""

    topic_id: str = Field(min_length=1, pattern=TOPIC_ID_PATTERN)
    version: str = Field(min_length=1)
    options: GenerationOptions = GenerationOptions()


class RegenerateRequest(BaseModel):
    """Body of POST /articles/{article_id}/regenerate."""

    stages: Optional[List[str]] = None
    stage_timeout: Optional[float] = Field(default=None, gt=0)


class RunStartResponse(BaseModel):
    """Response after starting a run."""

    run_id: str
    message: str


class RunList(BaseModel):
    """Run listing."""

    runs: List[RunRecord]
    total: int
