"""
Pydantic schemas for job creation, status projection and worker calls.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, model_validator

from storyjobs.v1.jobs.models import JobStatus

Audience = Literal["children", "young_adults", "adults"]
ArtStyle = Literal[
    "storybook", "semi-realistic", "comic-book", "flat-illustration", "anime"
]
Genre = Literal["adventure", "siblings", "bedtime", "fantasy", "history"]


# Kind-specific creation parameters


class ImageJobParams(BaseModel):
    """Parameters for a single illustration."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    image_prompt: str = Field(..., min_length=1, max_length=4000)
    character_description: str = Field(..., min_length=1, max_length=2000)
    emotion: str = Field(..., min_length=1, max_length=100)
    audience: Audience = "children"
    style: ArtStyle = "storybook"
    is_reused_image: bool = False
    cartoon_image: HttpUrl | None = None


class StoryJobParams(BaseModel):
    """Parameters for a full storybook from user-written text."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: str = Field(..., min_length=2, max_length=100)
    story: str = Field(..., min_length=50, max_length=10000)
    character_image: HttpUrl
    audience: Audience
    pages: list[dict[str, Any]] = Field(default_factory=list)
    is_reused_image: bool = False
    character_description: str | None = Field(default=None, max_length=2000)
    character_art_style: ArtStyle = "storybook"
    layout_type: str = "comic-book-panels"

    @model_validator(mode="after")
    def require_description_for_reused_image(self) -> "StoryJobParams":
        if self.is_reused_image and len(self.character_description or "") < 20:
            raise ValueError(
                "character_description must be at least 20 characters for reused images"
            )
        return self


class AutoStoryJobParams(BaseModel):
    """Parameters for a generated story around an existing character."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    genre: Genre
    character_description: str = Field(..., min_length=1, max_length=2000)
    cartoon_image_url: HttpUrl
    audience: Audience = "children"
    character_art_style: ArtStyle = "storybook"
    layout_type: str = "comic-book-panels"


class CartoonizeJobParams(BaseModel):
    """Parameters for turning a photo into a cartoon."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    prompt: str = Field(..., min_length=1, max_length=2000)
    image_url: HttpUrl
    style: ArtStyle = "semi-realistic"


class SceneJobParams(BaseModel):
    """Parameters for breaking a story into illustrated scenes."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    story: str = Field(..., min_length=50, max_length=10000)
    character_image: HttpUrl | None = None
    audience: Audience = "children"


# Creation boundary


class JobCreatedResponse(BaseModel):
    """Schema for the job creation response."""

    job_id: str = Field(..., serialization_alias="jobId")
    status: JobStatus
    estimated_completion: datetime = Field(..., serialization_alias="estimatedCompletion")
    estimated_minutes: int = Field(..., serialization_alias="estimatedMinutes")
    polling_url: str = Field(..., serialization_alias="pollingUrl")


# Status projection


class JobResult(BaseModel):
    result_ref: str | None = Field(default=None, serialization_alias="resultRef")
    data: dict[str, Any] | None = None


class ProjectedStatus(BaseModel):
    """Client-facing view of a job, derived from the stored record."""

    job_id: str = Field(..., serialization_alias="jobId")
    kind: str
    status: JobStatus
    progress: int
    current_step: str | None = Field(default=None, serialization_alias="currentStep")
    current_phase: str | None = Field(default=None, serialization_alias="currentPhase")
    estimated_time_remaining: int | None = Field(
        default=None,
        serialization_alias="estimatedTimeRemaining",
        description="Remaining minutes, only while processing",
    )
    created_at: datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime = Field(..., serialization_alias="updatedAt")
    started_at: datetime | None = Field(default=None, serialization_alias="startedAt")
    completed_at: datetime | None = Field(
        default=None, serialization_alias="completedAt"
    )
    processing_time_seconds: int | None = Field(
        default=None,
        serialization_alias="processingTimeSeconds",
        description="Seconds from first start to completion, once both are known",
    )
    result: JobResult | None = None
    error: str | None = None
    retry_count: int | None = Field(default=None, serialization_alias="retryCount")
    max_retries: int | None = Field(default=None, serialization_alias="maxRetries")
    retries_exhausted: bool = Field(
        default=False, serialization_alias="retriesExhausted"
    )
    cacheable: bool = False
    cache_control: str = Field(..., exclude=True)


# Listing and statistics


class JobSummary(BaseModel):
    """Schema for a job row in listings."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: str
    status: str
    progress: int
    current_step: str | None = Field(default=None, serialization_alias="currentStep")
    retry_count: int = Field(..., serialization_alias="retryCount")
    max_retries: int = Field(..., serialization_alias="maxRetries")
    user_id: str | None = Field(default=None, serialization_alias="userId")
    result_ref: str | None = Field(default=None, serialization_alias="resultRef")
    error_message: str | None = Field(default=None, serialization_alias="errorMessage")
    created_at: datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime = Field(..., serialization_alias="updatedAt")
    started_at: datetime | None = Field(default=None, serialization_alias="startedAt")
    completed_at: datetime | None = Field(
        default=None, serialization_alias="completedAt"
    )


class JobListResponse(BaseModel):
    jobs: list[JobSummary]
    total: int
    limit: int
    offset: int


class JobStatsResponse(BaseModel):
    """Schema for job statistics."""

    total: int
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    by_kind: dict[str, int] = Field(default_factory=dict, serialization_alias="byKind")
    queue_depth: int = Field(
        default=0,
        serialization_alias="queueDepth",
        description="Pending plus processing jobs",
    )
    oldest_pending_at: datetime | None = Field(
        default=None, serialization_alias="oldestPendingAt"
    )
    average_processing_seconds: float | None = Field(
        default=None, serialization_alias="averageProcessingSeconds"
    )
    peak_processing_seconds: float | None = Field(
        default=None, serialization_alias="peakProcessingSeconds"
    )
    success_rate: float = Field(
        default=0.0,
        serialization_alias="successRate",
        description="Completed as a percentage of finished jobs",
    )
    error_rate: float = Field(
        default=0.0,
        serialization_alias="errorRate",
        description="Failed jobs as a percentage of all jobs",
    )
    retry_rate: float = Field(
        default=0.0,
        serialization_alias="retryRate",
        description="Jobs retried at least once as a percentage of all jobs",
    )


# Worker-facing calls


class ClaimRequest(BaseModel):
    owner_id: str = Field(..., min_length=1, alias="ownerId")

    model_config = ConfigDict(populate_by_name=True)


class ProgressReport(BaseModel):
    owner_id: str = Field(..., min_length=1, alias="ownerId")
    progress: int = Field(..., description="Progress percentage, clamped to 0-100")
    current_step: str | None = Field(default=None, alias="currentStep")

    model_config = ConfigDict(populate_by_name=True)


class OutcomeType(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class FinalizeRequest(BaseModel):
    """Terminal outcome reported by the worker."""

    model_config = ConfigDict(populate_by_name=True)

    outcome: OutcomeType
    result_ref: str | None = Field(default=None, alias="resultRef")
    result_data: dict[str, Any] | None = Field(default=None, alias="resultData")
    error_message: str | None = Field(default=None, alias="errorMessage")

    @model_validator(mode="after")
    def check_outcome_fields(self) -> "FinalizeRequest":
        if self.outcome == OutcomeType.FAILED and not self.error_message:
            raise ValueError("error_message is required for a failed outcome")
        if self.outcome == OutcomeType.COMPLETED and self.error_message:
            raise ValueError("error_message is not allowed for a completed outcome")
        return self


class LockAction(str, Enum):
    ACQUIRE = "acquire"
    RELEASE = "release"


class LockRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    processing_id: str = Field(..., min_length=1, alias="processingId")
    action: LockAction


class RetryDecisionResponse(BaseModel):
    job_id: str = Field(..., serialization_alias="jobId")
    decision: str
    status: JobStatus
    retry_count: int = Field(..., serialization_alias="retryCount")
    max_retries: int = Field(..., serialization_alias="maxRetries")
