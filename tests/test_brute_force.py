"""Tests for the exhaustive searchers."""

from __future__ import annotations

import itertools

import numpy as np
import pytest

from quantum_annealer.sqa import (
    BipartiteGraphBFSearcher,
    DenseGraphBFSearcher,
    ErrorKind,
    OptimizeMethod,
    SolverError,
)
from quantum_annealer.sqa.hamiltonian import BipartiteGraph, DenseGraph


def random_symmetric(n: int, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    A = rng.normal(size=(n, n))
    return (A + A.T) / 2


class TestDenseBF:
    def test_matches_enumeration(self):
        W = random_symmetric(6, 0)
        energy, solutions = DenseGraphBFSearcher(DenseGraph.from_qubo(W)).search()
        expected = min(
            float(np.array(x) @ W @ np.array(x))
            for x in itertools.product([0, 1], repeat=6)
        )
        assert energy == pytest.approx(expected)
        assert len(solutions) == 1
        x = solutions[0].astype(float)
        assert float(x @ W @ x) == pytest.approx(expected)

    def test_tile_size_irrelevant(self):
        model = DenseGraph.from_qubo(random_symmetric(7, 1))
        e1, s1 = DenseGraphBFSearcher(model).search()
        e2, s2 = DenseGraphBFSearcher(model, tile_size=5).search()
        assert e1 == pytest.approx(e2)
        np.testing.assert_array_equal(s1[0], s2[0])

    def test_degenerate_ground_states(self):
        model = DenseGraph.from_hamiltonian([0, 0], [[0, -1], [-1, 0]])
        energy, solutions = DenseGraphBFSearcher(model).search()
        assert energy == pytest.approx(-2.0)
        assert {tuple(int(v) for v in x) for x in solutions} == {(0, 0), (1, 1)}

    def test_maximize(self):
        W = random_symmetric(5, 2)
        energy, _ = DenseGraphBFSearcher(
            DenseGraph.from_qubo(W, OptimizeMethod.MAXIMIZE)
        ).search()
        expected = max(
            float(np.array(x) @ W @ np.array(x))
            for x in itertools.product([0, 1], repeat=5)
        )
        assert energy == pytest.approx(expected)

    def test_too_many_variables(self):
        model = DenseGraph.from_hamiltonian(np.zeros(64), np.zeros((64, 64)))
        with pytest.raises(SolverError) as exc:
            DenseGraphBFSearcher(model)
        assert exc.value.kind is ErrorKind.INVALID_LENGTH


class TestBipartiteBF:
    @pytest.fixture
    def qubo(self):
        rng = np.random.default_rng(4)
        return rng.normal(size=4), rng.normal(size=3), rng.normal(size=(4, 3))

    def test_matches_enumeration(self, qubo):
        b0, b1, W = qubo
        energy, solutions = BipartiteGraphBFSearcher(
            BipartiteGraph.from_qubo(b0, b1, W), tile_size0=3, tile_size1=2
        ).search()
        expected = min(
            float(b0 @ np.array(x0) + b1 @ np.array(x1) + np.array(x0) @ W @ np.array(x1))
            for x0 in itertools.product([0, 1], repeat=4)
            for x1 in itertools.product([0, 1], repeat=3)
        )
        assert energy == pytest.approx(expected)
        x0, x1 = solutions[0]
        assert x0.shape == (4,)
        assert x1.shape == (3,)
        assert float(b0 @ x0 + b1 @ x1 + x0 @ W @ x1) == pytest.approx(expected)

    def test_maximize(self, qubo):
        b0, b1, W = qubo
        model = BipartiteGraph.from_qubo(b0, b1, W, OptimizeMethod.MAXIMIZE)
        energy, _ = BipartiteGraphBFSearcher(model).search()
        lo, _ = BipartiteGraphBFSearcher(BipartiteGraph.from_qubo(b0, b1, W)).search()
        assert energy > lo
