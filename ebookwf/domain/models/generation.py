"""Generation request parameters."""

from pydantic import BaseModel, ConfigDict, field_validator


class GenerationParams(BaseModel):
    """Sampling parameters sent with every generation call."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    temperature: float = 0.7
    max_tokens: int = 2000
    top_p: float = 0.95

    @field_validator("max_tokens")
    @classmethod
    def _max_tokens_ge_1(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_tokens must be >= 1")
        return v

    @field_validator("temperature")
    @classmethod
    def _temperature_range(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError("temperature must be between 0 and 2")
        return v
