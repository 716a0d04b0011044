"""Learning output DTOs."""

from pydantic import BaseModel, ConfigDict, Field

from comp_worker.domain.entities import DensityUpdate, PatternDensity, TrainingSignal
from comp_worker.domain.enums import ExecutionMode, SignalType
from comp_worker.domain.types import JsonValue


class PatternDensityModel(BaseModel):
    """Persisted density for one pattern signature."""

    model_config = ConfigDict(populate_by_name=True)

    signature: str
    confidence: float = Field(ge=0.0)
    total_executions: int = Field(0, alias="totalExecutions")
    last_anomaly_rate: float = Field(0.0, alias="lastAnomalyRate")
    execution_mode: ExecutionMode = Field(ExecutionMode.FULL_TRACE, alias="executionMode")

    @classmethod
    def from_update(cls, update: DensityUpdate) -> "PatternDensityModel":
        """Build the persisted form of a density update."""
        return cls(
            signature=update.signature,
            confidence=update.new_confidence,
            total_executions=update.total_executions,
            last_anomaly_rate=update.anomaly_rate,
            execution_mode=update.execution_mode,
        )

    def to_domain(self) -> PatternDensity:
        """Convert to domain density."""
        return PatternDensity(
            signature=self.signature,
            confidence=self.confidence,
            total_executions=self.total_executions,
            last_anomaly_rate=self.last_anomaly_rate,
            execution_mode=self.execution_mode,
        )


class TrainingSignalModel(BaseModel):
    """Training signal record."""

    model_config = ConfigDict(populate_by_name=True)

    signal_type: SignalType = Field(alias="signalType")
    signal_value: dict[str, JsonValue] = Field(alias="signalValue")
    confidence: float

    @classmethod
    def from_domain(cls, signal: TrainingSignal) -> "TrainingSignalModel":
        """Build from domain signal."""
        return cls(
            signal_type=signal.signal_type,
            signal_value=signal.signal_value,
            confidence=signal.confidence,
        )
