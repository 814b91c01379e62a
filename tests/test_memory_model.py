"""Tests for the page-replacement engine: FrameSet, the three policies, and the runner."""

import random

import pytest

from memory_model import (
    NEVER,
    EmptyStream,
    FrameSet,
    InvalidCapacity,
    NoPolicySelected,
    Policy,
    SimulationCancelled,
    next_use_table,
    run_policies,
    simulate,
)

REFERENCE = [7, 0, 1, 2, 0, 3, 0, 4, 2, 3, 0, 3, 2]
BELADY = [1, 2, 3, 4, 1, 2, 5, 1, 2, 3, 4, 5]


def random_streams(count=40, seed=1234):
    rng = random.Random(seed)
    for _ in range(count):
        length = rng.randint(1, 30)
        yield [rng.randrange(6) for _ in range(length)]


# -- FrameSet -----------------------------------------------------------------


class TestFrameSet:

    def test_rejects_zero_capacity(self):
        with pytest.raises(InvalidCapacity):
            FrameSet(0)

    def test_first_empty_prefers_lowest_slot(self):
        frames = FrameSet(3)
        assert frames.first_empty() == 0
        frames.replace(0, "a")
        frames.replace(2, "c")
        assert frames.first_empty() == 1

    def test_find_and_replace(self):
        frames = FrameSet(2)
        assert frames.replace(0, 10) is None
        assert frames.find(10) == 0
        assert frames.find(11) is None
        assert frames.replace(0, 11) == 10
        assert frames.find(10) is None

    def test_full_frame_set_has_no_empty_slot(self):
        frames = FrameSet(2)
        frames.replace(0, 1)
        frames.replace(1, 2)
        assert frames.first_empty() is None

    def test_page_cannot_occupy_two_slots(self):
        frames = FrameSet(2)
        frames.replace(0, 5)
        with pytest.raises(ValueError):
            frames.replace(1, 5)

    def test_snapshot_is_independent_copy(self):
        frames = FrameSet(2)
        frames.replace(0, 1)
        snap = frames.snapshot()
        frames.replace(1, 2)
        assert snap == (1, None)

    def test_pages_need_only_equality(self):
        frames = FrameSet(2)
        frames.replace(0, ("x", 1))
        assert frames.find(("x", 1)) == 0


# -- Reference scenario ---------------------------------------------------------


class TestReferenceScenario:

    @pytest.mark.parametrize("policy, faults", [
        (Policy.FIFO, 10),
        (Policy.LRU, 9),
        (Policy.OPT, 7),
    ])
    def test_fault_counts(self, policy, faults):
        assert simulate(policy, REFERENCE, 3).faults == faults

    @pytest.mark.parametrize("policy", list(Policy))
    def test_first_three_are_compulsory(self, policy):
        steps = simulate(policy, REFERENCE, 3).steps
        for step in steps[:3]:
            assert not step.hit
            assert step.evicted is None
            assert step.compulsory
        assert steps[2].frames == (7, 0, 1)

    def test_fifo_trace(self):
        steps = simulate(Policy.FIFO, REFERENCE, 3).steps
        # 2 replaces the oldest resident (7)
        assert steps[3].evicted == 7
        assert steps[3].frames == (2, 0, 1)
        assert steps[4].hit
        # 3 replaces 0 even though 0 was just hit
        assert steps[5].evicted == 0
        assert steps[5].frames == (2, 3, 1)

    def test_lru_trace(self):
        steps = simulate(Policy.LRU, REFERENCE, 3).steps
        assert steps[5].evicted == 1
        assert steps[5].frames == (2, 0, 3)
        assert steps[7].evicted == 2
        assert steps[7].frames == (4, 0, 3)

    def test_optimal_trace(self):
        steps = simulate(Policy.OPT, REFERENCE, 3).steps
        # 7 and 1 never recur: tie broken by the lower slot
        assert steps[3].evicted == 7
        assert steps[5].evicted == 1
        assert steps[7].evicted == 0
        assert steps[-1].frames == (2, 0, 3)


# -- Belady's anomaly ------------------------------------------------------------


class TestBeladyAnomaly:

    def test_fifo_gets_worse_with_more_frames(self):
        assert simulate(Policy.FIFO, BELADY, 3).faults == 9
        assert simulate(Policy.FIFO, BELADY, 4).faults == 10

    @pytest.mark.parametrize("policy", [Policy.LRU, Policy.OPT])
    def test_stack_policies_are_monotonic_on_belady_stream(self, policy):
        faults = [simulate(policy, BELADY, c).faults for c in range(1, len(BELADY) + 1)]
        assert faults == sorted(faults, reverse=True)

    @pytest.mark.parametrize("policy", [Policy.LRU, Policy.OPT])
    def test_stack_policies_are_monotonic(self, policy):
        for refs in random_streams():
            faults = [simulate(policy, refs, c).faults for c in range(1, len(refs) + 1)]
            assert all(a >= b for a, b in zip(faults, faults[1:])), refs


# -- Properties -------------------------------------------------------------------


class TestProperties:

    @pytest.mark.parametrize("policy", list(Policy))
    def test_conservation_and_compulsory_bound(self, policy):
        for refs in random_streams():
            for capacity in (1, 2, 3, 5):
                result = simulate(policy, refs, capacity)
                assert result.faults + result.hits == len(refs)
                assert len(result.steps) == len(refs)
                assert result.faults >= len(set(refs))

    def test_optimal_is_lower_bound(self):
        for refs in random_streams():
            for capacity in (1, 2, 3, 4):
                results = run_policies(refs, capacity, Policy)
                assert results[Policy.OPT].faults <= results[Policy.FIFO].faults
                assert results[Policy.OPT].faults <= results[Policy.LRU].faults

    def test_single_frame_faults_on_every_change(self):
        for refs in random_streams():
            expected = [t == 0 or refs[t] != refs[t - 1] for t in range(len(refs))]
            traces = []
            for policy in Policy:
                steps = simulate(policy, refs, 1).steps
                assert [not s.hit for s in steps] == expected
                traces.append([s.frames for s in steps])
            assert traces[0] == traces[1] == traces[2]

    def test_steps_are_in_time_order(self):
        steps = simulate(Policy.LRU, REFERENCE, 2).steps
        assert [s.time for s in steps] == list(range(len(REFERENCE)))
        assert [s.ref for s in steps] == REFERENCE

    def test_evicted_page_is_gone_and_new_page_resident(self):
        for refs in random_streams(count=10):
            for policy in Policy:
                for step in simulate(policy, refs, 2).steps:
                    assert step.ref in step.frames
                    assert step.frames[step.slot] == step.ref
                    if step.evicted is not None:
                        assert step.evicted not in step.frames

    @pytest.mark.parametrize("policy", list(Policy))
    def test_replay_is_identical(self, policy):
        first = simulate(policy, REFERENCE, 3)
        second = simulate(policy, REFERENCE, 3)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_lru_uses_recency_not_insertion(self):
        # 1 is hit at t=2, so 2 is least recent when 3 arrives
        steps = simulate(Policy.LRU, [1, 2, 1, 3], 2).steps
        assert steps[3].evicted == 2
        fifo = simulate(Policy.FIFO, [1, 2, 1, 3], 2).steps
        assert fifo[3].evicted == 1

    def test_optimal_ties_use_lowest_slot(self):
        steps = simulate(Policy.OPT, ["a", "b", "c", "d"], 3).steps
        assert steps[3].evicted == "a"
        assert steps[3].slot == 0

    def test_non_numeric_pages(self):
        result = simulate(Policy.LRU, ["x", "y", "x", "z", "y"], 2)
        assert result.faults == 4


# -- Optimal lookahead ----------------------------------------------------------


def scan_victim(frames, refs, t):
    """Naive Belady victim: rescan the remainder of the stream."""
    def next_use(page):
        for i in range(t + 1, len(refs)):
            if refs[i] == page:
                return i
        return NEVER
    best = max(next_use(p) for p in frames)
    return next(i for i, p in enumerate(frames) if next_use(p) == best)


def test_next_use_table():
    assert next_use_table([1, 2, 1, 3, 2]) == [2, 4, NEVER, NEVER, NEVER]


def test_optimal_matches_naive_rescan():
    for refs in random_streams(count=30, seed=99):
        for capacity in (2, 3):
            steps = simulate(Policy.OPT, refs, capacity).steps
            for t in range(1, len(steps)):
                step = steps[t]
                if step.evicted is not None:
                    before = steps[t - 1].frames
                    assert step.slot == scan_victim(before, refs, t)


# -- Errors and runner ---------------------------------------------------------------


class TestErrors:

    def test_invalid_capacity(self):
        with pytest.raises(InvalidCapacity) as exc:
            simulate(Policy.FIFO, [1, 2], 0)
        assert exc.value.capacity == 0

    def test_empty_stream(self):
        with pytest.raises(EmptyStream):
            simulate(Policy.FIFO, [], 3)

    def test_no_policy_selected(self):
        with pytest.raises(NoPolicySelected):
            run_policies([1, 2, 3], 3, [])

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            simulate("LRU", [], 1)

    def test_unknown_policy_name(self):
        with pytest.raises(ValueError):
            Policy.parse("CLOCK")

    def test_cancellation_discards_run(self):
        calls = []

        def cancelled():
            calls.append(1)
            return len(calls) > 3

        with pytest.raises(SimulationCancelled) as exc:
            simulate(Policy.OPT, REFERENCE, 3, cancelled=cancelled)
        assert exc.value.time == 3


class TestRunner:

    def test_results_keyed_by_policy(self):
        results = run_policies(REFERENCE, 3, ["fifo", "Optimal"])
        assert set(results) == {Policy.FIFO, Policy.OPT}
        assert results[Policy.FIFO].policy is Policy.FIFO

    def test_duplicate_policies_run_once(self):
        results = run_policies(REFERENCE, 3, [Policy.LRU, "LRU"])
        assert list(results) == [Policy.LRU]

    def test_accepts_generator_stream(self):
        results = run_policies((p for p in BELADY), 3, Policy)
        assert results[Policy.FIFO].faults == 9
        assert results[Policy.LRU].faults == 10
        assert results[Policy.OPT].faults == 7

    def test_to_dict_is_json_ready(self):
        data = run_policies([1, 2, 1], 1, [Policy.FIFO])[Policy.FIFO].to_dict()
        assert data["policy"] == "FIFO"
        assert data["faults"] == 3
        assert data["hits"] == 0
        assert data["steps"][2] == {"time": 2, "ref": 1, "hit": False, "evicted": 2, "frames": [1]}
