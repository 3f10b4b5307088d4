"""Tests for annealing schedules and the annealing driver."""

from __future__ import annotations

import numpy as np
import pytest

from quantum_annealer.sqa import (
    Algorithm,
    AnnealingDriver,
    AnnealSchedule,
    BipartiteGraphAnnealer,
    BipartiteGraphBFSearcher,
    DenseGraphAnnealer,
    DenseGraphBFSearcher,
    ErrorKind,
    OptimizeMethod,
    ScheduleStep,
    SolverError,
    anneal,
)

W4 = np.array(
    [
        [-1.0, 2.0, -1.0, 0.5],
        [2.0, -2.0, 1.0, -1.0],
        [-1.0, 1.0, 1.0, -2.0],
        [0.5, -1.0, -2.0, -1.0],
    ]
)


@pytest.fixture
def schedule():
    return AnnealSchedule.linear(
        n_steps=80,
        gamma_initial=3.0,
        gamma_final=0.01,
        temperature_initial=1.0,
        temperature_final=0.02,
    )


class TestSchedule:
    def test_linear_endpoints(self):
        s = AnnealSchedule.linear(5, 2.0, 0.0, 0.1, 0.1)
        assert len(s) == 5
        assert s[0] == ScheduleStep(2.0, 0.1)
        assert s[-1].gamma == pytest.approx(0.0)
        assert all(step.temperature == 0.1 for step in s)

    def test_geometric_decay(self):
        s = AnnealSchedule.geometric(4, 8.0, 1.0)
        gammas = [step.gamma for step in s]
        np.testing.assert_allclose(gammas, [8.0, 4.0, 2.0, 1.0])

    def test_scalar_temperature_broadcast(self):
        s = AnnealSchedule.from_arrays([3.0, 2.0, 1.0], 0.5)
        assert [step.temperature for step in s] == [0.5, 0.5, 0.5]


class TestScheduleValidation:
    @pytest.fixture
    def ready(self):
        with DenseGraphAnnealer(W4, seed=1, n_trotters=4) as ann:
            ann.randomize_spin()
            yield ann

    @pytest.mark.parametrize(
        "gammas, temps",
        [
            ([], []),
            ([1.0, 2.0], [0.1, 0.1]),
            ([2.0, 1.0], [0.1, 0.2]),
            ([2.0, -1.0], [0.1, 0.1]),
            ([2.0, 1.0], [0.1, -0.1]),
            ([np.nan, 1.0], [0.1, 0.1]),
            ([2.0, 1.0], [np.inf, 0.1]),
        ],
    )
    def test_malformed_rejected_before_work(self, ready, gammas, temps):
        before = ready.get_q()
        with pytest.raises(SolverError) as exc:
            anneal(ready, AnnealSchedule.from_arrays(gammas, temps))
        assert exc.value.kind is ErrorKind.MALFORMED_SCHEDULE
        np.testing.assert_array_equal(ready.get_q(), before)

    def test_zero_temperature_allowed(self, ready):
        result = anneal(ready, AnnealSchedule.from_arrays([1.0, 0.5, 0.0], 0.0))
        assert result.n_sweeps == 3

    def test_not_ready(self, schedule):
        with DenseGraphAnnealer(W4, seed=1) as ann:
            with pytest.raises(SolverError) as exc:
                anneal(ann, schedule)
        assert exc.value.kind is ErrorKind.NOT_CONFIGURED
        assert "N_TROTTERS_GIVEN" in str(exc.value)


class TestDriver:
    def test_two_spin_ferromagnet(self, schedule):
        with DenseGraphAnnealer() as ann:
            ann.set_hamiltonian([0.0, 0.0], [[0.0, -1.0], [-1.0, 0.0]])
            ann.set_seed(0)
            ann.set_trotters(4)
            ann.randomize_spin()
            result = anneal(ann, schedule)
        assert result.best_energy == pytest.approx(-2.0)
        assert tuple(int(v) for v in result.best_x) in {(0, 0), (1, 1)}
        np.testing.assert_allclose(result.final_energies, -2.0)
        for row in result.final_q:
            assert row[0] == row[1]

    def test_schedule_exhausted(self):
        with DenseGraphAnnealer(W4, seed=3, n_trotters=2) as ann:
            ann.randomize_spin()
            driver = AnnealingDriver(ann, AnnealSchedule.linear(7, 1.0, 0.1, 0.2, 0.2))
            result = driver.run()
        assert result.n_sweeps == 7
        assert driver.steps_done == 7
        assert -1 <= result.best_step < 7
        assert result.trajectory[-1].step == 6

    def test_result_shapes(self, schedule):
        with DenseGraphAnnealer(W4, seed=2, n_trotters=6) as ann:
            ann.randomize_spin()
            result = anneal(ann, schedule)
            final_energy = ann.get_E()
        assert result.final_x.shape == (6, 4)
        assert result.final_q.shape == (6, 4)
        np.testing.assert_allclose(result.final_energies, final_energy)
        assert 0 <= result.best_replica < 6
        assert result.best_energy == pytest.approx(float(result.best_x @ W4 @ result.best_x))

    def test_best_energy_never_worse_than_start(self, schedule):
        with DenseGraphAnnealer(W4, seed=4, n_trotters=4) as ann:
            ann.randomize_spin()
            start = ann.get_E().min()
            result = anneal(ann, schedule)
        assert result.best_energy <= start

    @pytest.mark.parametrize("seed", [5, 17, 29, 101])
    def test_reaches_ground_state(self, schedule, seed):
        ground, _ = DenseGraphBFSearcher(
            DenseGraphAnnealer(W4).model
        ).search()
        best = {}
        for algorithm in (Algorithm.NAIVE, Algorithm.COLORING):
            with DenseGraphAnnealer(
                W4, algorithm=algorithm, seed=seed, n_trotters=8
            ) as ann:
                ann.randomize_spin()
                result = anneal(ann, schedule)
            assert result.algorithm == algorithm.value
            best[algorithm] = result.best_energy
        assert best[Algorithm.NAIVE] == pytest.approx(ground)
        assert best[Algorithm.COLORING] == pytest.approx(ground)
        assert best[Algorithm.NAIVE] == pytest.approx(best[Algorithm.COLORING])

    def test_maximize(self, schedule):
        with DenseGraphAnnealer(W4, OptimizeMethod.MAXIMIZE) as ann:
            best, _ = DenseGraphBFSearcher(ann.model).search()
            ann.set_seed(6)
            ann.set_trotters(8)
            ann.randomize_spin()
            result = anneal(ann, schedule)
        assert result.method is OptimizeMethod.MAXIMIZE
        assert result.best_energy == pytest.approx(best)
        assert best == pytest.approx(max(float(x @ W4 @ x) for x in _all_bits(4)))

    def test_parallel_coloring(self, schedule):
        with DenseGraphAnnealer(
            W4, algorithm=Algorithm.COLORING, n_workers=2, seed=7, n_trotters=8
        ) as ann:
            ann.randomize_spin()
            result = anneal(ann, schedule)
        ground, _ = DenseGraphBFSearcher(DenseGraphAnnealer(W4).model).search()
        assert result.best_energy == pytest.approx(ground)

    @pytest.mark.parametrize("algorithm", [Algorithm.NAIVE, Algorithm.COLORING])
    def test_bipartite(self, schedule, algorithm):
        rng = np.random.default_rng(11)
        b0, b1, W = rng.normal(size=3), rng.normal(size=2), rng.normal(size=(3, 2))
        with BipartiteGraphAnnealer(
            b0, b1, W, algorithm=algorithm, seed=8, n_trotters=8
        ) as ann:
            ground, _ = BipartiteGraphBFSearcher(ann.model).search()
            ann.randomize_spin()
            result = anneal(ann, schedule)
        x0, x1 = result.best_x
        assert result.best_energy == pytest.approx(b0 @ x0 + b1 @ x1 + x0 @ W @ x1)
        assert result.best_energy == pytest.approx(ground)
        assert result.final_x[0].shape == (8, 3)
        assert result.final_x[1].shape == (8, 2)


def _all_bits(n):
    for k in range(1 << n):
        yield np.array([(k >> i) & 1 for i in range(n)], dtype=float)
