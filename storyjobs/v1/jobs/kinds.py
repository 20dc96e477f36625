"""
Per-kind job profiles.

Each job kind carries its own retry budget, progress rate, phase table and
parameter schema. Callers look the profile up in the kind registry instead of
branching on the kind themselves.
"""

import math
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from storyjobs.v1.core.exceptions import ValidationError


@dataclass(frozen=True)
class Phase:
    """A progress band starting at `start` (inclusive)."""

    start: int
    label: str


@dataclass(frozen=True)
class JobKindProfile:
    kind: str
    label: str
    params_model: type[BaseModel]
    max_retries: int
    minutes_per_percent: float
    estimated_minutes: int
    timeout_s: int
    phases: tuple[Phase, ...]

    def __post_init__(self) -> None:
        if not self.phases or self.phases[0].start != 0:
            raise ValueError(f"Phase table for {self.kind} must start at 0")
        starts = [phase.start for phase in self.phases]
        if any(b <= a for a, b in zip(starts, starts[1:])):
            raise ValueError(f"Phase table for {self.kind} must be strictly increasing")
        if starts[-1] > 100:
            raise ValueError(f"Phase table for {self.kind} must stay within 0-100")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.minutes_per_percent <= 0:
            raise ValueError("minutes_per_percent must be positive")

    def phase_for(self, progress: int) -> str:
        """Return the label of the band containing `progress`."""
        progress = max(0, min(100, progress))
        label = self.phases[0].label
        for phase in self.phases:
            if progress >= phase.start:
                label = phase.label
            else:
                break
        return label

    def remaining_minutes(self, progress: int) -> int:
        """Linear remaining-time estimate, never below one minute."""
        remaining = 100 - max(0, min(100, progress))
        return max(1, math.ceil(remaining * self.minutes_per_percent))

    def validate_parameters(self, parameters: dict[str, Any]) -> dict[str, Any]:
        """Validate creation parameters and return their JSON-safe form."""
        try:
            model = self.params_model.model_validate(parameters)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid parameters for {self.kind} job",
                details={
                    "kind": self.kind,
                    "errors": [
                        {
                            "field": ".".join(str(loc) for loc in err["loc"]),
                            "message": err["msg"],
                        }
                        for err in e.errors()
                    ],
                },
            ) from e
        return model.model_dump(mode="json")

    @property
    def initial_step(self) -> str:
        return f"Initializing {self.label}"
