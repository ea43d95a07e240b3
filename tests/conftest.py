"""Shared fixtures: option texts with known rubric scores."""

import pytest

from enon_core.evaluator import EvaluationBreakdown, Evaluator
from enon_core.profile import ContextualProfile
from enon_core.register import StateRegister


# Hits every positive indicator class while avoiding every negative
# substring.  Under the neutral profile every criterion saturates at 1.0
# except non_maleficence (baseline 0.8): composite = 0.95.
_ALIGNED_TEXT = (
    "help assist improve benefit enhance support enable empower heal "
    "create choice decide consent voluntary optional control freedom "
    "agency fair equal equitable just balanced inclusive accessible "
    "neutral explain transparent clear open visible understandable "
    "documented public confidential secure encrypted anonymous protect "
    "safeguard opt-in cultural diverse respectful multicultural global "
    "local traditional custom"
)

# self 3×0.1, uncertainty 4×0.15, correction 3×0.2 → 0.48
_REFLECTIVE_TEXT = (
    "I think maybe we should revise and update; perhaps I could "
    "reconsider?"
)


class FixedEvaluator(Evaluator):
    """Evaluator whose composite is looked up from a table by option."""

    def __init__(self, composites, **kwargs):
        super().__init__(**kwargs)
        self.composites = dict(composites)

    def score(self, option, profile, context=None):
        real = super().score(option, profile, context)
        return EvaluationBreakdown(
            scores=real.scores,
            weights=real.weights,
            composite=self.composites[option],
            region=real.region,
        )


@pytest.fixture
def aligned_text():
    """Composite 0.95, reflective score 0."""
    return _ALIGNED_TEXT


@pytest.fixture
def reflective_text():
    """Reflective score 0.48."""
    return _REFLECTIVE_TEXT


@pytest.fixture
def aligned_option():
    """Composite 0.95 and reflective score above 0.25: collapsible."""
    return _ALIGNED_TEXT + " " + _REFLECTIVE_TEXT


@pytest.fixture
def plain_option():
    """No indicators at all: composite is the weighted baseline, 0.645."""
    return "do nothing at all"


@pytest.fixture
def reflective_pair():
    """Two distinct options with the same reflective score (0.48)."""
    return _REFLECTIVE_TEXT, _REFLECTIVE_TEXT + "!"


@pytest.fixture
def fixed_evaluator():
    """Factory for evaluators with a fixed composite per option."""
    return FixedEvaluator


@pytest.fixture
def neutral_profile():
    return ContextualProfile.neutral()


@pytest.fixture
def concentrated_register():
    """Length-4 register with all energy in one component (dispersion 0)."""
    return StateRegister.from_values([1.0, 0.0, 0.0, 0.0])
