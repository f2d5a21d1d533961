from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.core.entities import DEFAULT_TIMEZONE, AvailabilityState


class StrictSection(BaseModel):
    model_config = ConfigDict(extra="forbid")


class EngineRules(StrictSection):
    default_state: AvailabilityState = AvailabilityState.AVAILABLE
    default_timezone: str = DEFAULT_TIMEZONE
    horizon_days: int = Field(default=366, gt=0)


class PriorityRules(StrictSection):
    min: int = 0
    max: int = Field(default=1000, gt=0)

    @field_validator("min")
    @classmethod
    def min_is_zero(cls, v: int) -> int:
        if v != 0:
            raise ValueError("priority.min must be 0")
        return v


class ValidationRules(StrictSection):
    max_past_years: int = Field(default=2, ge=0)
    max_future_years: int = Field(default=5, ge=0)


class BulkRules(StrictSection):
    max_products: int = Field(default=100, gt=0)
    max_workers: int = Field(default=1, gt=0)


class CacheRules(StrictSection):
    ttl_seconds: int = Field(default=300, ge=0)


class MigrationRules(StrictSection):
    hidden_priority: int = Field(default=1000, ge=0)


class AvailabilityRulesConfig(StrictSection):
    engine: EngineRules = Field(default_factory=EngineRules)
    priority: PriorityRules = Field(default_factory=PriorityRules)
    validation: ValidationRules = Field(default_factory=ValidationRules)
    bulk: BulkRules = Field(default_factory=BulkRules)
    cache: CacheRules = Field(default_factory=CacheRules)
    migration: MigrationRules = Field(default_factory=MigrationRules)

    @model_validator(mode="after")
    def hidden_priority_in_range(self) -> "AvailabilityRulesConfig":
        # Migrated hidden drafts are validated against priority.max
        if self.migration.hidden_priority > self.priority.max:
            raise ValueError(
                f"migration.hidden_priority ({self.migration.hidden_priority}) "
                f"exceeds priority.max ({self.priority.max})"
            )
        return self
