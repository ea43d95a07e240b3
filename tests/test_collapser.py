"""Tests for the PathCollapser state machine.

Covers:
1. Candidate generation — path bound, threshold filter, probabilities
2. Normal collapse — winner selection, register commit, events
3. Emergency collapse — every trigger, fixed outputs, never raises
4. Lifecycle — phases, profiles, snapshots, reset
"""

import itertools
import logging

import numpy as np
import pytest

from enon_core.collapser import (
    EMERGENCY_MARKER,
    ConstantResource,
    PathCollapser,
    Phase,
)
from enon_core.evaluator import Evaluator
from enon_core.events import (
    CANDIDATES_CREATED,
    COLLAPSE_APPLIED,
    COLLAPSE_EMERGENCY,
    CORE_RESET,
    DECISION_LOGGED,
    EVALUATION_COMPLETE,
    REGISTER_INITIALIZED,
    STATE_CHANGED,
    WILDCARD,
    EventChannel,
)
from enon_core.profile import ContextualProfile, StaticProfileProvider
from enon_core.register import NORM_TOLERANCE, StateRegister


def _core(register, evaluator=None, **kwargs):
    return PathCollapser(evaluator=evaluator, register=register,
                         rng=np.random.default_rng(0), **kwargs)


class FlakyEvaluator(Evaluator):
    """Fails on the option ``"bad"``."""

    def score(self, option, profile, context=None):
        if option == "bad":
            raise RuntimeError("scorer down")
        return super().score(option, profile, context)


# ═══════════════════════════════════════════════════════════════════
# 1. Candidate generation
# ═══════════════════════════════════════════════════════════════════

class TestGeneration:

    def test_only_bound_options_evaluated(self, concentrated_register,
                                          plain_option):
        core = _core(concentrated_register)
        core.create_candidates(None, [plain_option] * 5)
        assert len(core.evaluator.history) == 3

    def test_low_resources_bound(self, concentrated_register, plain_option):
        core = _core(concentrated_register,
                     resource_signal=ConstantResource(0.1))
        assert core.path_bound() == 2
        core.create_candidates(None, [plain_option] * 5)
        assert len(core.evaluator.history) == 2

    def test_options_pulled_lazily(self, concentrated_register, plain_option):
        pulled = []

        def options():
            for i in itertools.count():
                pulled.append(i)
                yield plain_option

        _core(concentrated_register).create_candidates(None, options())
        assert pulled == [0, 1, 2]

    def test_below_threshold_dropped(self, concentrated_register,
                                     fixed_evaluator, reflective_pair):
        opt_a, opt_b = reflective_pair
        ev = fixed_evaluator({opt_a: 0.95, opt_b: 0.80})
        core = _core(concentrated_register, ev)
        kept = core.create_candidates(None, [opt_a, opt_b])
        assert [c.option for c in kept] == [opt_a]
        assert kept[0].alignment == 0.95

    def test_probability_is_share_of_bound(self, concentrated_register,
                                           fixed_evaluator, reflective_pair):
        opt_a, opt_b = reflective_pair
        ev = fixed_evaluator({opt_a: 0.95, opt_b: 0.80})
        kept = _core(concentrated_register, ev).create_candidates(
            None, [opt_a, opt_b])
        assert kept[0].probability == pytest.approx(1 / 3)

    def test_probability_low_resources(self, concentrated_register,
                                       aligned_option):
        core = _core(concentrated_register,
                     resource_signal=ConstantResource(0.0))
        kept = core.create_candidates(None, [aligned_option])
        assert kept[0].probability == pytest.approx(0.5)

    def test_candidate_fields(self, concentrated_register, aligned_option):
        core = _core(concentrated_register)
        (cand,) = core.create_candidates(None, [aligned_option])
        assert cand.id == "path_1_0"
        assert cand.alignment == pytest.approx(0.95)
        assert cand.reflective >= 0.25
        assert cand.evaluation is not None
        np.testing.assert_array_equal(cand.register, [1.0, 0.0, 0.0, 0.0])

    def test_generation_replaces_candidates(self, concentrated_register,
                                            aligned_option, plain_option):
        core = _core(concentrated_register)
        core.create_candidates(None, [aligned_option])
        second = core.create_candidates(None, [plain_option, aligned_option])
        assert [c.id for c in second] == ["path_2_1"]
        assert [c.id for c in core.candidates] == ["path_2_1"]

    def test_failed_evaluation_skipped(self, concentrated_register, caplog,
                                       aligned_option):
        core = _core(concentrated_register, FlakyEvaluator())
        with caplog.at_level(logging.ERROR, logger="enon_core.collapser"):
            kept = core.create_candidates(None, ["bad", aligned_option])
        assert [c.id for c in kept] == ["path_1_1"]
        assert "scorer down" in caplog.text

    def test_mixed_key_option_kept(self, concentrated_register,
                                   aligned_option, caplog):
        option = {1: aligned_option, "b": 2}
        core = _core(concentrated_register)
        with caplog.at_level(logging.ERROR, logger="enon_core.collapser"):
            (cand,) = core.create_candidates(None, [option])
        assert cand.option is option
        assert cand.alignment == pytest.approx(0.95)
        assert caplog.records == []

    def test_candidates_created_event(self, concentrated_register,
                                      aligned_option, plain_option):
        core = _core(concentrated_register)
        seen = []
        core.events.subscribe(CANDIDATES_CREATED, seen.append)
        core.create_candidates(None, [aligned_option, plain_option])
        assert seen[0].payload == {"count": 1}


# ═══════════════════════════════════════════════════════════════════
# 2. Normal collapse
# ═══════════════════════════════════════════════════════════════════

class TestCollapse:

    def test_single_aligned_candidate(self, concentrated_register,
                                      aligned_option):
        core = _core(concentrated_register)
        core.create_candidates(None, [aligned_option])
        state = core.collapse()
        assert not state.emergency
        assert state.alignment == pytest.approx(0.95)
        assert state.dispersion == 0.0
        assert state.chosen.option == aligned_option
        assert core.phase is Phase.COLLAPSED
        np.testing.assert_array_equal(core.register, [1.0, 0.0, 0.0, 0.0])

    def test_register_committed_exactly(self, aligned_option):
        register = StateRegister.from_values([0.999, 0.02, 0.03, 0.01])
        core = _core(register)
        core.create_candidates(None, [aligned_option])
        state = core.collapse()
        assert not state.emergency
        np.testing.assert_array_equal(core.register, state.register)

    def test_filtered_scenario(self, concentrated_register, fixed_evaluator,
                               reflective_pair):
        opt_a, opt_b = reflective_pair
        ev = fixed_evaluator({opt_a: 0.95, opt_b: 0.80})
        core = _core(concentrated_register, ev)
        core.create_candidates(None, [opt_a, opt_b])
        state = core.collapse()
        assert state.alignment == 0.95
        assert state.chosen.option == opt_a

    def test_highest_combined_score_wins(self, concentrated_register,
                                         fixed_evaluator, reflective_pair):
        opt_a, opt_b = reflective_pair
        ev = fixed_evaluator({opt_a: 0.93, opt_b: 0.97})
        core = _core(concentrated_register, ev)
        core.create_candidates(None, [opt_a, opt_b])
        assert core.collapse().chosen.option == opt_b

    def test_reflective_breaks_equal_alignment(self, concentrated_register,
                                               reflective_text,
                                               fixed_evaluator,
                                               reflective_pair):
        opt_a = reflective_pair[0]
        more = reflective_text + " actually"
        ev = fixed_evaluator({opt_a: 0.95, more: 0.95})
        core = _core(concentrated_register, ev)
        core.create_candidates(None, [opt_a, more])
        assert core.collapse().chosen.option == more

    def test_tie_goes_to_first(self, concentrated_register, fixed_evaluator,
                               reflective_pair):
        opt_a, opt_b = reflective_pair
        ev = fixed_evaluator({opt_a: 0.95, opt_b: 0.95})
        core = _core(concentrated_register, ev)
        core.create_candidates(None, [opt_a, opt_b])
        assert core.collapse().chosen.id == "path_1_0"

    def test_metadata_from_winner(self, concentrated_register, aligned_option):
        core = _core(concentrated_register)
        core.create_candidates(None, [aligned_option])
        meta = core.collapse().metadata
        assert meta.self_reference_score >= 0.25
        assert "maybe" in meta.uncertainty_markers
        assert meta.correction_records == ()

    def test_candidates_cleared(self, concentrated_register, aligned_option):
        core = _core(concentrated_register)
        core.create_candidates(None, [aligned_option])
        core.collapse()
        assert core.candidates == []

    def test_event_sequence(self, concentrated_register, aligned_option):
        channel = EventChannel()
        core = _core(concentrated_register, events=channel)
        names = []
        channel.subscribe(WILDCARD, lambda e: names.append(e.name))
        core.create_candidates(None, [aligned_option])
        core.collapse()
        assert names == [DECISION_LOGGED, EVALUATION_COMPLETE,
                         CANDIDATES_CREATED, COLLAPSE_APPLIED, STATE_CHANGED]

    def test_state_changed_carries_state(self, concentrated_register,
                                         aligned_option):
        core = _core(concentrated_register)
        seen = []
        core.events.subscribe(STATE_CHANGED, seen.append)
        core.create_candidates(None, [aligned_option])
        state = core.collapse()
        assert seen[0].payload is state
        assert core.current_state() is state


# ═══════════════════════════════════════════════════════════════════
# 3. Emergency collapse
# ═══════════════════════════════════════════════════════════════════

class TestEmergency:

    def _assert_emergency(self, core, state, threshold=0.91):
        assert state.emergency
        assert state.alignment == threshold
        assert state.dispersion == 0.02
        assert state.metadata.self_reference_score == 0.3
        assert state.metadata.uncertainty_markers == (EMERGENCY_MARKER,)
        assert state.candidates == ()
        assert core.phase is Phase.EMERGENCY_COLLAPSED
        assert np.all(core.register >= 0.0)
        assert abs(np.linalg.norm(core.register) - 1.0) < NORM_TOLERANCE

    def test_no_qualifying_options(self, concentrated_register,
                                   fixed_evaluator, reflective_pair):
        opt_a, opt_b = reflective_pair
        ev = fixed_evaluator({opt_a: 0.85, opt_b: 0.80})
        core = _core(concentrated_register, ev)
        assert core.create_candidates(None, [opt_a, opt_b]) == []
        assert core.emergency_reason() == "no candidates"
        self._assert_emergency(core, core.collapse())

    def test_high_dispersion(self, aligned_option):
        core = _core(StateRegister(64, rng=np.random.default_rng(5)))
        core.create_candidates(None, [aligned_option])
        assert core.emergency_reason() == "dispersion above threshold"
        self._assert_emergency(core, core.collapse())

    def test_low_reflective_candidate(self, concentrated_register,
                                      aligned_option, aligned_text):
        core = _core(concentrated_register)
        core.create_candidates(None, [aligned_option, aligned_text])
        assert core.emergency_reason() == \
            "candidate reflective score below threshold"
        self._assert_emergency(core, core.collapse())

    def test_low_resources(self, concentrated_register, aligned_option):
        core = _core(concentrated_register,
                     resource_signal=ConstantResource(0.1))
        core.create_candidates(None, [aligned_option])
        assert core.emergency_reason() == "resources low"
        self._assert_emergency(core, core.collapse())

    def test_collapse_without_generation(self, concentrated_register):
        core = _core(concentrated_register)
        self._assert_emergency(core, core.collapse())

    def test_alignment_tracks_threshold(self, concentrated_register):
        core = _core(concentrated_register)
        core.evaluator.set_alignment_threshold(0.95)
        self._assert_emergency(core, core.collapse(), threshold=0.95)

    def test_emergency_events(self, concentrated_register):
        core = _core(concentrated_register)
        names = []
        core.events.subscribe(WILDCARD, lambda e: names.append(e.name))
        core.collapse()
        assert names == [COLLAPSE_EMERGENCY, STATE_CHANGED]

    def test_logged_as_warning(self, concentrated_register, caplog):
        core = _core(concentrated_register)
        with caplog.at_level(logging.WARNING, logger="enon_core.collapser"):
            core.collapse()
        assert "no candidates" in caplog.text

    def test_internal_error_becomes_emergency(self, concentrated_register,
                                              monkeypatch, aligned_option):
        core = _core(concentrated_register)
        core.create_candidates(None, [aligned_option])

        def broken(self, values, normalize=True):
            raise RuntimeError("register fault")

        monkeypatch.setattr(StateRegister, "load", broken)
        self._assert_emergency(core, core.collapse())

    def test_failing_resource_signal_reads_low(self, concentrated_register):
        def signal():
            raise OSError("sensor offline")

        core = _core(concentrated_register, resource_signal=signal)
        assert core.resource_level() == 0.0
        assert core.path_bound() == 2

    @pytest.mark.parametrize("level,expected", [
        (float("nan"), 0.0), (-1.0, 0.0), (7.0, 1.0), (0.5, 0.5),
    ])
    def test_resource_level_clamped(self, concentrated_register, level,
                                    expected):
        core = _core(concentrated_register,
                     resource_signal=ConstantResource(level))
        assert core.resource_level() == expected

    @pytest.mark.parametrize("composites", [
        (0.95, 0.80), (0.85, 0.80), (0.91, 0.99), (0.5, 0.5),
    ])
    def test_alignment_never_below_threshold(self, concentrated_register,
                                             composites, fixed_evaluator,
                                             reflective_pair):
        opt_a, opt_b = reflective_pair
        ev = fixed_evaluator(dict(zip([opt_a, opt_b], composites)))
        core = _core(concentrated_register, ev)
        core.create_candidates(None, [opt_a, opt_b])
        assert core.collapse().alignment >= 0.91


# ═══════════════════════════════════════════════════════════════════
# 4. Lifecycle
# ═══════════════════════════════════════════════════════════════════

class TestLifecycle:

    def test_register_initialized_event(self):
        channel = EventChannel()
        seen = []
        channel.subscribe(REGISTER_INITIALIZED, seen.append)
        PathCollapser(events=channel)
        assert seen[0].payload["length"] == 256

    def test_initial_state(self, concentrated_register):
        core = _core(concentrated_register)
        assert core.phase is Phase.IDLE
        assert core.current_state() is None
        assert core.candidates == []
        assert core.correction_depth == 0

    def test_phase_transitions(self, concentrated_register, aligned_option):
        core = _core(concentrated_register)
        core.create_candidates(None, [aligned_option])
        assert core.phase is Phase.GENERATING
        core.collapse()
        assert core.phase is Phase.COLLAPSED
        core.reset()
        assert core.phase is Phase.IDLE

    def test_provider_supplies_profile(self, concentrated_register,
                                       aligned_option):
        provider = StaticProfileProvider(
            ContextualProfile.neutral(region="kenya"))
        core = _core(concentrated_register, profile_provider=provider)
        (cand,) = core.create_candidates("ctx", [aligned_option])
        assert cand.evaluation.region == "kenya"

    def test_explicit_profile_wins(self, concentrated_register,
                                   aligned_option):
        provider = StaticProfileProvider(
            ContextualProfile.neutral(region="kenya"))
        core = _core(concentrated_register, profile_provider=provider)
        (cand,) = core.create_candidates(
            "ctx", [aligned_option], profile=ContextualProfile.neutral("jp"))
        assert cand.evaluation.region == "jp"

    def test_failing_provider_falls_back(self, concentrated_register,
                                         aligned_option):
        class Broken:
            def profile_for(self, context):
                raise LookupError("no such region")

        core = _core(concentrated_register, profile_provider=Broken())
        (cand,) = core.create_candidates("ctx", [aligned_option])
        assert cand.evaluation.region == "global"

    def test_register_snapshot_independent(self, concentrated_register):
        core = _core(concentrated_register)
        snap = core.register
        snap[:] = 0.0
        assert core.register[0] == 1.0

    def test_state_and_candidate_read_only(self, concentrated_register,
                                           aligned_option):
        core = _core(concentrated_register)
        core.create_candidates(None, [aligned_option])
        state = core.collapse()
        with pytest.raises(ValueError):
            state.register[0] = 0.5
        with pytest.raises(ValueError):
            state.chosen.register[0] = 0.5

    def test_later_changes_do_not_touch_state(self, concentrated_register,
                                              aligned_option):
        core = _core(concentrated_register)
        core.create_candidates(None, [aligned_option])
        state = core.collapse()
        core.collapse()  # emergency refill
        np.testing.assert_array_equal(state.register, [1.0, 0.0, 0.0, 0.0])

    def test_reset(self, concentrated_register, aligned_option):
        core = _core(concentrated_register)
        seen = []
        core.events.subscribe(CORE_RESET, seen.append)
        core.create_candidates(None, [aligned_option])
        core.collapse()
        core.reset()
        assert core.current_state() is None
        assert core.candidates == []
        assert core.register.shape == (4,)
        assert abs(np.linalg.norm(core.register) - 1.0) < NORM_TOLERANCE
        assert seen[0].payload == {"length": 4}

    def test_repr(self, concentrated_register):
        assert "phase=idle" in repr(_core(concentrated_register))
