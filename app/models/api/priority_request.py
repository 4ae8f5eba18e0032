# app/models/api/priority_request.py
"""
Priority dashboard API request models.
Used by routes for input validation; camelCase on the wire.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ScoringUpdateRequest(BaseModel):
    """Partial update of the scoring parameters. Omitted fields keep their value."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    base_weights: dict[str, float] | None = Field(
        default=None,
        description="Weights per source priority ('high', 'flagged', ...); merged into the table",
    )
    default_base_weight: float | None = Field(None, ge=0, le=100)
    due_weight: float | None = Field(None, ge=0, le=100)
    due_horizon_hours: float | None = Field(
        None, gt=0, description="Hours over which the due term climbs"
    )
    overdue_bonus: float | None = Field(None, ge=0, le=100)
    overdue_cap_hours: float | None = Field(None, gt=0)
    recency_weight: float | None = Field(None, ge=0, le=100)
    recency_half_life_hours: float | None = Field(None, gt=0)
    critical_threshold: float | None = Field(None, ge=0, le=100)
    high_threshold: float | None = Field(None, ge=0, le=100)
    medium_threshold: float | None = Field(None, ge=0, le=100)

    def parameters(self) -> dict[str, float]:
        """Scalar parameters that were supplied."""
        return self.model_dump(exclude_none=True, exclude={"base_weights"})
