"""Exhaustive search over all bit vectors of small problems.

Bit vectors are enumerated in tiles with :func:`create_bits_sequence` and
evaluated in batches. All optimal solutions are kept, so degenerate ground
states are reported together.
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

from quantum_annealer.sqa.bits import MAX_PACKED_BITS, create_bits_sequence
from quantum_annealer.sqa.errors import ErrorKind
from quantum_annealer.sqa.hamiltonian import BipartiteGraph, DenseGraph

logger = logging.getLogger(__name__)


def _merge(
    best: float,
    solutions: list,
    energies: NDArray[np.float64],
    candidates: list,
    tolerance: float,
) -> float:
    """Fold one tile of signed energies into the running optimum."""
    tile_min = float(energies.min())
    if tile_min < best - tolerance:
        best = tile_min
        solutions.clear()
    if tile_min <= best + tolerance:
        for k in np.flatnonzero(energies <= best + tolerance):
            solutions.append(candidates[k])
    return best


class DenseGraphBFSearcher:
    """Brute-force searcher for dense problems."""

    def __init__(
        self,
        model: DenseGraph,
        tile_size: int = 1024,
        tolerance: float = 1e-9,
    ) -> None:
        model.reporter.abort_if(
            model.n_spins > MAX_PACKED_BITS,
            ErrorKind.INVALID_LENGTH,
            f"N={model.n_spins} too large for brute force (max {MAX_PACKED_BITS})",
        )
        self.model = model
        self.tile_size = tile_size
        self.tolerance = tolerance

    def search(self) -> tuple[float, list[NDArray[np.int8]]]:
        """Return (optimal objective value, list of optimal bit vectors)."""
        n = self.model.n_spins
        sign = self.model.method.sign
        x_max = 1 << n
        best = float("inf")
        solutions: list[NDArray[np.int8]] = []
        for begin in range(0, x_max, self.tile_size):
            end = min(begin + self.tile_size, x_max)
            X = create_bits_sequence(begin, end, n, reporter=self.model.reporter)
            E = sign * self.model.energies(X)
            best = _merge(best, solutions, E, list(X), self.tolerance)
        logger.info("Dense BF search: N=%d, %d optimal solution(s)", n, len(solutions))
        return sign * best, solutions


class BipartiteGraphBFSearcher:
    """Brute-force searcher for bipartite problems."""

    def __init__(
        self,
        model: BipartiteGraph,
        tile_size0: int = 256,
        tile_size1: int = 256,
        tolerance: float = 1e-9,
    ) -> None:
        model.reporter.abort_if(
            model.n_spins > MAX_PACKED_BITS,
            ErrorKind.INVALID_LENGTH,
            f"N0+N1={model.n_spins} too large for brute force (max {MAX_PACKED_BITS})",
        )
        self.model = model
        self.tile_size0 = tile_size0
        self.tile_size1 = tile_size1
        self.tolerance = tolerance

    def search(
        self,
    ) -> tuple[float, list[tuple[NDArray[np.int8], NDArray[np.int8]]]]:
        """Return (optimal objective value, list of optimal (x0, x1) pairs)."""
        n0, n1 = self.model.n0, self.model.n1
        sign = self.model.method.sign
        reporter = self.model.reporter
        best = float("inf")
        solutions: list[tuple[NDArray[np.int8], NDArray[np.int8]]] = []
        for begin0 in range(0, 1 << n0, self.tile_size0):
            end0 = min(begin0 + self.tile_size0, 1 << n0)
            X0 = create_bits_sequence(begin0, end0, n0, reporter=reporter)
            for begin1 in range(0, 1 << n1, self.tile_size1):
                end1 = min(begin1 + self.tile_size1, 1 << n1)
                X1 = create_bits_sequence(begin1, end1, n1, reporter=reporter)
                P0 = np.repeat(X0, len(X1), axis=0)
                P1 = np.tile(X1, (len(X0), 1))
                E = sign * self.model.energies(P0, P1)
                best = _merge(best, solutions, E, list(zip(P0, P1)), self.tolerance)
        logger.info(
            "Bipartite BF search: N0=%d, N1=%d, %d optimal solution(s)",
            n0, n1, len(solutions),
        )
        return sign * best, solutions
