"""
tests/test_progression.py — Unit Tests for XP / Level Rollover
===============================================================
"""

from __future__ import annotations

import random
from datetime import UTC, datetime

import pytest

from devkit.constants import xp_for_level
from devkit.engine.progression import LEVEL_UP, ProgressionState, apply_experience

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestApplyExperience:
    def test_default_state_for_new_user(self):
        state = apply_experience(None, 40, now=NOW)
        assert (state.experience, state.level) == (40, 1)
        assert state.new_entries == ()

    def test_single_level_up(self):
        state = apply_experience(ProgressionState(experience=90, level=1), 25, now=NOW)
        assert state.level == 2
        assert state.experience == 15
        assert len(state.new_entries) == 1
        entry = state.new_entries[0]
        assert entry.type == LEVEL_UP
        assert entry.data == {"newLevel": 2}
        assert entry.earned_at == NOW
        assert state.leveled_up

    def test_exact_threshold_levels_up(self):
        state = apply_experience(ProgressionState(experience=0, level=1), 100, now=NOW)
        assert (state.experience, state.level) == (0, 2)

    def test_large_grant_crosses_several_levels(self):
        # 100 (L1) + 200 (L2) + 300 (L3) = 600 → level 4 with 50 left over
        state = apply_experience(None, 650, now=NOW)
        assert state.level == 4
        assert state.experience == 50
        assert [e.data["newLevel"] for e in state.new_entries] == [2, 3, 4]

    def test_zero_delta_is_a_noop(self):
        before = ProgressionState(experience=30, level=3)
        after = apply_experience(before, 0, now=NOW)
        assert (after.experience, after.level) == (30, 3)
        assert not after.leveled_up

    def test_negative_delta_rejected(self):
        with pytest.raises(ValueError):
            apply_experience(ProgressionState(), -1)

    def test_invalid_level_rejected(self):
        with pytest.raises(ValueError):
            apply_experience(ProgressionState(experience=0, level=0), 10)

    def test_xp_for_next_level(self):
        assert ProgressionState(level=7).xp_for_next_level == 700

    def test_invariants_hold_over_random_sequences(self):
        rng = random.Random(1234)
        state = ProgressionState()
        for _ in range(500):
            previous_level = state.level
            state = apply_experience(state, rng.randint(0, 900), now=NOW)
            assert 0 <= state.experience < xp_for_level(state.level)
            assert state.level >= previous_level
            assert len(state.new_entries) == state.level - previous_level
