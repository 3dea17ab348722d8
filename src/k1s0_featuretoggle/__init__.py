"""k1s0 featuretoggle library."""

from .client import FeatureToggleClient
from .config import ClientConfig, RetrySection, build_config, load_config
from .evaluator import EvalDetail, Reason, ValueType, evaluate, evaluate_toggle, evaluate_typed
from .events import AccessEvent, EventSink, InMemoryEventSink
from .exceptions import FeatureToggleError, FeatureToggleErrorCodes
from .hashing import bucket, salt_hash
from .models import (
    Condition,
    ConditionType,
    Distribution,
    Predicate,
    Prerequisite,
    Rule,
    Segment,
    SegmentRule,
    Serve,
    Snapshot,
    Toggle,
    load_json,
    parse_snapshot,
)
from .repository import Repository, validate_snapshot
from .source import (
    DefinitionSource,
    HttpDefinitionSource,
    InMemoryDefinitionSource,
    InMemoryPushSource,
    PushSource,
)
from .synchronizer import Synchronizer, SyncType
from .user import EvaluationContext

__all__ = [
    "FeatureToggleClient",
    "ClientConfig",
    "RetrySection",
    "build_config",
    "load_config",
    "EvalDetail",
    "Reason",
    "ValueType",
    "evaluate",
    "evaluate_toggle",
    "evaluate_typed",
    "AccessEvent",
    "EventSink",
    "InMemoryEventSink",
    "FeatureToggleError",
    "FeatureToggleErrorCodes",
    "bucket",
    "salt_hash",
    "Condition",
    "ConditionType",
    "Distribution",
    "Predicate",
    "Prerequisite",
    "Rule",
    "Segment",
    "SegmentRule",
    "Serve",
    "Snapshot",
    "Toggle",
    "load_json",
    "parse_snapshot",
    "Repository",
    "validate_snapshot",
    "DefinitionSource",
    "HttpDefinitionSource",
    "InMemoryDefinitionSource",
    "InMemoryPushSource",
    "PushSource",
    "Synchronizer",
    "SyncType",
    "EvaluationContext",
]
