from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import ContentFilter, QualityTier
from .format import FormatDescriptor


class SelectionPolicy(BaseModel):
    """How to pick one format out of a catalog. Immutable."""

    model_config = ConfigDict(frozen=True)

    quality: QualityTier = Field(QualityTier.HIGHEST, description="Quality tier to rank by")
    filter: ContentFilter = Field(ContentFilter.AUDIO_VIDEO, description="Required media content")
    target_height: int | None = Field(None, description="Wanted height for the 'target' tier")
    predicate: Callable[[FormatDescriptor], bool] | None = Field(
        None, description="Extra condition a format must satisfy"
    )
    comparator: Callable[[FormatDescriptor, FormatDescriptor], int] | None = Field(
        None, description="cmp-style ordering for the 'custom' tier (negative = first is better)"
    )

    @model_validator(mode="after")
    def _check_tier_arguments(self) -> "SelectionPolicy":
        if self.quality == QualityTier.TARGET and not self.target_height:
            raise ValueError("The 'target' tier needs target_height")
        if self.quality == QualityTier.CUSTOM and self.predicate is None and self.comparator is None:
            raise ValueError("The 'custom' tier needs a predicate or a comparator")
        return self
