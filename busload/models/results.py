from pydantic import BaseModel, ConfigDict, Field


class RunResult(BaseModel):
    """Summary of a finished run. Computed once, never mutated."""
    
    model_config = ConfigDict(frozen=True)
    
    count: int = 0
    min_ms: float = 0.0
    max_ms: float = 0.0
    mean_ms: float = 0.0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    total_duration_ms: float = 0.0
    messages_processed: int = 0
    messages_per_second: float = 0.0
    failures: int = Field(default=0, ge=0)
