"""
Job kind registry initialization.

Registers the profile of every job kind with the global kind registry.
"""

from storyjobs.config.logging import get_logger
from storyjobs.v1.core.registries import job_kind_registry
from storyjobs.v1.jobs.kinds import JobKindProfile, Phase
from storyjobs.v1.jobs.models import JobKind
from storyjobs.v1.jobs.schemas import (
    AutoStoryJobParams,
    CartoonizeJobParams,
    ImageJobParams,
    SceneJobParams,
    StoryJobParams,
)

logger = get_logger(__name__)


DEFAULT_PROFILES = (
    JobKindProfile(
        kind=JobKind.IMAGE.value,
        label="image generation",
        params_model=ImageJobParams,
        max_retries=3,
        minutes_per_percent=1.5 / 60,
        estimated_minutes=2,
        timeout_s=5 * 60,
        phases=(
            Phase(0, "Processing scene description"),
            Phase(25, "Generating illustrations"),
            Phase(75, "Finalizing illustration"),
        ),
    ),
    JobKindProfile(
        kind=JobKind.STORY.value,
        label="storybook generation",
        params_model=StoryJobParams,
        max_retries=2,
        minutes_per_percent=0.1,
        estimated_minutes=8,
        timeout_s=20 * 60,
        phases=(
            Phase(0, "Analyzing story content"),
            Phase(25, "Creating comic book panel breakdown"),
            Phase(50, "Generating character-consistent panel illustrations"),
            Phase(90, "Assembling comic book pages"),
        ),
    ),
    JobKindProfile(
        kind=JobKind.AUTO_STORY.value,
        label="auto-story generation",
        params_model=AutoStoryJobParams,
        max_retries=3,
        minutes_per_percent=0.05,
        estimated_minutes=6,
        timeout_s=15 * 60,
        phases=(
            Phase(0, "Generating story content"),
            Phase(25, "Creating scene breakdown"),
            Phase(50, "Generating illustrations"),
            Phase(90, "Assembling final storybook"),
        ),
    ),
    JobKindProfile(
        kind=JobKind.CARTOONIZE.value,
        label="image cartoonization",
        params_model=CartoonizeJobParams,
        max_retries=3,
        minutes_per_percent=1.2 / 60,
        estimated_minutes=2,
        timeout_s=5 * 60,
        phases=(
            Phase(0, "Analyzing image content"),
            Phase(20, "Generating cartoon style"),
            Phase(50, "Applying artistic filters"),
            Phase(80, "Finalizing cartoon image"),
        ),
    ),
    JobKindProfile(
        kind=JobKind.SCENE.value,
        label="scene generation",
        params_model=SceneJobParams,
        max_retries=3,
        minutes_per_percent=0.03,
        estimated_minutes=4,
        timeout_s=10 * 60,
        phases=(
            Phase(0, "Analyzing story structure"),
            Phase(30, "Breaking down into scenes"),
            Phase(60, "Creating visual descriptions"),
            Phase(90, "Finalizing scene layout"),
        ),
    ),
)


def register_job_kinds() -> None:
    """Register all job kind profiles with the kind registry."""
    for profile in DEFAULT_PROFILES:
        if not job_kind_registry.has(profile.kind):
            job_kind_registry.register(profile.kind, profile)

    logger.debug("Job kinds registered", registered_kinds=job_kind_registry.list())


# Auto-register kinds when module is imported
register_job_kinds()
