"""Domain enums for component kinds, intents and run states."""

from enum import Enum


class ComponentType(str, Enum):
    """Component type enum."""

    TIER_LOOKUP = "tier_lookup"
    MATRIX_LOOKUP = "matrix_lookup"
    PERCENTAGE = "percentage"
    CONDITIONAL_PERCENTAGE = "conditional_percentage"
    PERCENTAGE_WITH_GATE = "percentage_with_gate"
    FLAT_PERCENTAGE = "flat_percentage"


class AggregationRule(str, Enum):
    """How repeated values of one field collapse into a metric."""

    SUM = "sum"
    FIRST = "first"


class IntentOperation(str, Enum):
    """Intent operation enum."""

    BOUNDED_LOOKUP_1D = "bounded_lookup_1d"
    BOUNDED_LOOKUP_2D = "bounded_lookup_2d"
    SCALAR_MULTIPLY = "scalar_multiply"
    CONDITIONAL_GATE = "conditional_gate"
    CONSTANT = "constant"


class SourceKind(str, Enum):
    """Intent input source enum."""

    METRIC = "metric"
    CONSTANT = "constant"
    ENTITY_ATTRIBUTE = "entity_attribute"
    PRIOR_COMPONENT = "prior_component"


class ComparisonOperator(str, Enum):
    """Comparison operator for conditional gates."""

    GTE = ">="
    GT = ">"
    LTE = "<="
    LT = "<"
    EQ = "=="
    NE = "!="


class ModifierKind(str, Enum):
    """Post-operation modifier enum."""

    CAP = "cap"
    FLOOR = "floor"


class EventKind(str, Enum):
    """Confidence surface event kind."""

    CONFIDENCE = "confidence"
    ANOMALY = "anomaly"


class AnomalyType(str, Enum):
    """Per-entity anomaly enum."""

    DATA_MISSING = "data_missing"
    ZERO_OUTPUT = "zero_output"
    BOUNDARY_HIT = "boundary_hit"


class ExecutionMode(str, Enum):
    """Advisory execution mode derived from pattern density."""

    FULL_TRACE = "full_trace"  # shadow: always dual-path
    LIGHT_TRACE = "light_trace"
    SILENT = "silent"  # trusted: path B could be skipped


class LifecycleState(str, Enum):
    """Calculation batch lifecycle state."""

    DRAFT = "DRAFT"
    PREVIEW = "PREVIEW"
    RECONCILE = "RECONCILE"
    OFFICIAL = "OFFICIAL"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUPERSEDED = "SUPERSEDED"
    FAILED = "FAILED"


class RunState(str, Enum):
    """Batch orchestrator state."""

    COLLECTING_INPUTS = "COLLECTING_INPUTS"
    EVALUATING = "EVALUATING"
    CONSOLIDATING = "CONSOLIDATING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


class SignalType(str, Enum):
    """Training signal type."""

    SYNAPTIC_DENSITY = "training:synaptic_density"
    DUAL_PATH_CONCORDANCE = "training:dual_path_concordance"
