from pydantic import BaseModel, Field, model_validator


class IngestRules(BaseModel):
    allowed_event_types: list[str] = Field(min_length=1)
    max_batch_size: int = Field(100, ge=1)
    session_timeout_minutes: int = Field(30, ge=1)
    max_url_length: int = Field(2048, ge=16)
    max_properties_bytes: int = Field(8192, ge=0)
    max_timestamp_age_seconds: int = Field(86400, ge=0)
    max_timestamp_future_seconds: int = Field(300, ge=0)
    salt_env_var: str = "PM_IP_SALT"

    @model_validator(mode="after")
    def _pageview_required(self) -> "IngestRules":
        # Aggregation is defined over pageview events; a config without them is unusable.
        if "pageview" not in self.allowed_event_types:
            raise ValueError("ingest.allowed_event_types must include 'pageview'")
        return self


class AggregationRules(BaseModel):
    default_days: int = Field(7, ge=1)
    max_days: int = Field(365, ge=1)
    default_limit: int = Field(10, ge=1)
    max_limit: int = Field(100, ge=1)
    rollup_cache_enabled: bool = True


class TrackerRules(BaseModel):
    batch_size: int = Field(10, ge=1)
    flush_interval_seconds: float = Field(5.0, gt=0)
    max_queue_size: int = Field(1000, ge=1)
    request_timeout_seconds: float = Field(5.0, gt=0)


class OpsRules(BaseModel):
    required_env: list[str] = Field(default_factory=list)


class Rules(BaseModel):
    ingest: IngestRules
    aggregation: AggregationRules = Field(default_factory=AggregationRules)
    tracker: TrackerRules = Field(default_factory=TrackerRules)
    ops: OpsRules = Field(default_factory=OpsRules)
