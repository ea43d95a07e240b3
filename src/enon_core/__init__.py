"""ENON core: threshold-gated decision evaluation over a unit-norm register.

Scores candidate response paths against a seven-criterion alignment rubric
tilted by a contextual profile, collapses them to a single committed path
under safety thresholds (with a guaranteed-safe emergency fallback), and
applies bounded-depth, reproducible corrections to collapsed states.

>>> from enon_core import PathCollapser, ContextualProfile
>>> core = PathCollapser()
>>> core.create_candidates({"topic": "help"}, ["option a", "option b"])
[]
>>> core.collapse().emergency
True
"""
from .errors import (
    EnonError, ConfigurationError, RecursionLimitError,
    EthicalThresholdViolation, DegenerateStateWarning,
)
from .thresholds import ThresholdRegistry, DEFAULT_THRESHOLDS, VALID_RANGES
from .events import Event, EventChannel
from .profile import (
    ContextualProfile, DEFAULT_DIMENSIONS,
    ProfileProvider, StaticProfileProvider,
)
from .register import StateRegister, normalize_vector, dispersion_of

# Rubric rule table
from .criteria import (
    CRITERIA, CRITERION_BASELINES, BASE_WEIGHTS,
    SignalRule, ContextRule, WeightRule, SignalFiring,
    SIGNAL_RULES, CONTEXT_RULES, WEIGHT_RULES,
    score_criteria, adjust_weights, get_rules, replace_rules,
    canonical_json, option_text,
)
from .reflective import ReflectionProfile, analyse_reflection, reflective_score
from .evaluator import Evaluator, EvaluationBreakdown, DecisionRecord

# State machine
from .state import Candidate, CorrectionRecord, ReflectiveMetadata, State
from .corrector import Corrector, correction_vector
from .collapser import PathCollapser, Phase, ConstantResource

__all__ = [
    # Errors
    "EnonError", "ConfigurationError", "RecursionLimitError",
    "EthicalThresholdViolation", "DegenerateStateWarning",
    # Configuration
    "ThresholdRegistry", "DEFAULT_THRESHOLDS", "VALID_RANGES",
    # Events
    "Event", "EventChannel",
    # Profiles
    "ContextualProfile", "DEFAULT_DIMENSIONS",
    "ProfileProvider", "StaticProfileProvider",
    # Register
    "StateRegister", "normalize_vector", "dispersion_of",
    # Rubric
    "CRITERIA", "CRITERION_BASELINES", "BASE_WEIGHTS",
    "SignalRule", "ContextRule", "WeightRule", "SignalFiring",
    "SIGNAL_RULES", "CONTEXT_RULES", "WEIGHT_RULES",
    "score_criteria", "adjust_weights", "get_rules", "replace_rules",
    "canonical_json", "option_text",
    "ReflectionProfile", "analyse_reflection", "reflective_score",
    "Evaluator", "EvaluationBreakdown", "DecisionRecord",
    # State machine
    "Candidate", "CorrectionRecord", "ReflectiveMetadata", "State",
    "Corrector", "correction_vector",
    "PathCollapser", "Phase", "ConstantResource",
]

__version__ = "0.1.0"
