# SPDX-License-Identifier: Apache-2.0
"""Tests for kvsim.session_pool module."""

import threading

import pytest

from kvsim.config import (
    EvictionPolicy,
    SimulationConfig,
    SimulationMode,
    batched_config,
    single_prompt_config,
)
from kvsim.exceptions import InvalidSimulationConfigError, SessionNotFoundError
from kvsim.session_pool import SessionPool, validate_config


@pytest.fixture
def pool():
    return SessionPool(max_sessions=3)


class TestValidateConfig:
    """Tests for validate_config."""

    def test_valid(self):
        validate_config(SimulationConfig())

    def test_invalid(self):
        with pytest.raises(InvalidSimulationConfigError) as exc_info:
            validate_config(SimulationConfig(block_count=0, recent_n_window=0))
        assert len(exc_info.value.errors) == 2


class TestSessionPoolCreate:
    """Tests for creating sessions."""

    def test_create(self, pool):
        entry = pool.create(SimulationConfig())

        assert entry.session_id.startswith("sim-")
        assert entry.state.tick == 0
        assert entry.state.mode == SimulationMode.PREFILL
        assert pool.session_count == 1
        assert pool.get_session_ids() == [entry.session_id]

    def test_ids_unique(self, pool):
        a = pool.create(SimulationConfig())
        b = pool.create(SimulationConfig())
        assert a.session_id != b.session_id

    def test_invalid_config_not_stored(self, pool):
        with pytest.raises(InvalidSimulationConfigError):
            pool.create(SimulationConfig(block_capacity=0))
        assert pool.session_count == 0

    def test_lru_dropped_when_full(self, pool):
        entries = [pool.create(SimulationConfig()) for _ in range(3)]
        entries[0].last_access = 300.0
        entries[1].last_access = 100.0
        entries[2].last_access = 200.0

        newest = pool.create(SimulationConfig())

        ids = pool.get_session_ids()
        assert pool.session_count == 3
        assert entries[1].session_id not in ids
        assert newest.session_id in ids

    def test_status(self, pool):
        pool.create(SimulationConfig())
        assert pool.get_status() == {"session_count": 1, "max_sessions": 3}
        assert pool.max_sessions == 3


class TestSessionPoolOperations:
    """Tests for stepping, resetting and deleting sessions."""

    def test_get_unknown(self, pool):
        with pytest.raises(SessionNotFoundError):
            pool.get("sim-missing")

    def test_get_updates_last_access(self, pool):
        entry = pool.create(SimulationConfig())
        entry.last_access = 0.0
        assert pool.get(entry.session_id).last_access > 0.0

    def test_step(self, pool):
        entry = pool.create(single_prompt_config("a b c"))

        state = pool.step(entry.session_id, ticks=2)

        assert state.tick == 2
        assert state.write_clock == 2
        assert pool.get(entry.session_id).state is state

    def test_step_generated_labels(self, pool):
        entry = pool.create(batched_config(["a", "b"]))
        pool.step(entry.session_id, ticks=3)

        state = pool.step(entry.session_id, generated=["x", "y"])

        tokens = {state.slots[i].token for i in state.last_written}
        assert tokens == {"x", "y"}

    def test_step_unknown(self, pool):
        with pytest.raises(SessionNotFoundError):
            pool.step("sim-missing")

    def test_reset_keeps_config(self, pool):
        config = single_prompt_config("a b", eviction_policy="recent-n")
        entry = pool.create(config)
        pool.step(entry.session_id, ticks=5)

        state = pool.reset(entry.session_id)

        assert state.tick == 0
        assert state.write_clock == 0
        assert state.config == config

    def test_reset_with_new_config(self, pool):
        entry = pool.create(SimulationConfig())
        state = pool.reset(entry.session_id, SimulationConfig(eviction_policy="pinned-prefix"))
        assert state.policy == EvictionPolicy.PINNED_PREFIX

    def test_reset_invalid_config_keeps_state(self, pool):
        entry = pool.create(SimulationConfig())
        pool.step(entry.session_id)

        with pytest.raises(InvalidSimulationConfigError):
            pool.reset(entry.session_id, SimulationConfig(block_count=-1))
        assert pool.get(entry.session_id).state.tick == 1

    def test_delete(self, pool):
        entry = pool.create(SimulationConfig())
        pool.delete(entry.session_id)
        assert pool.session_count == 0
        with pytest.raises(SessionNotFoundError):
            pool.delete(entry.session_id)

    def test_clear(self, pool):
        pool.create(SimulationConfig())
        pool.create(SimulationConfig())
        pool.clear()
        assert pool.session_count == 0

    def test_concurrent_steps_serialized(self):
        pool = SessionPool()
        entry = pool.create(single_prompt_config("a b c d"))

        threads = [
            threading.Thread(target=pool.step, args=(entry.session_id, 5))
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert pool.get(entry.session_id).state.tick == 20
