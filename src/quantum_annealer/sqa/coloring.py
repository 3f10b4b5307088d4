"""Spin update scheduling for Trotter-replica Metropolis sweeps.

Two strategies:

- naive: one spin at a time, in index order, over every replica. Each flip
  is committed immediately.
- coloring: spins are partitioned into color classes (independent sets of
  the interaction graph). All spins of one class are evaluated together
  against the same state, split across worker threads, and accepted flips
  are committed once every worker of the class has finished.

Energy change for flipping spin i of replica r (m replicas, sign s of the
optimize method):

    dE = -2 s q_ri (h_i + 2 (J q_r)_i) / m + 2 J_perp q_ri (q_(r-1)i + q_(r+1)i)

    J_perp = -(T / 2) ln tanh(Gamma / (m T))

Replicas form a ring along imaginary time. A flip is accepted with
probability min(1, exp(-dE / T)).
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import networkx as nx
import numpy as np
import scipy.sparse
from numpy.typing import NDArray

from quantum_annealer.sqa.errors import ErrorKind, ErrorReporter, default_reporter
from quantum_annealer.sqa.types import Algorithm

logger = logging.getLogger(__name__)

J_PERP_FROZEN = 1e10


def j_perp(gamma: float, temperature: float, n_trotters: int) -> float:
    """Inter-replica coupling strength from the transverse field.

    Small gamma: J_perp -> large (replicas frozen together, classical).
    Large gamma: J_perp -> 0 (replicas independent).
    """
    if gamma <= 0:
        return J_PERP_FROZEN
    if temperature <= 0:
        return 0.0
    mt = n_trotters * temperature
    arg = gamma / mt
    if arg > 15.0:
        # ln tanh(a) ~ -2 exp(-2a) for large a
        return temperature * np.exp(-2.0 * arg)
    tanh_val = np.tanh(arg)
    if tanh_val <= 0:
        return J_PERP_FROZEN
    return float(min(-(temperature / 2.0) * np.log(tanh_val), J_PERP_FROZEN))


def greedy_coloring(adjacency: scipy.sparse.sparray) -> list[NDArray[np.intp]]:
    """Partition vertices into independent sets.

    Largest-degree-first ordering with first-fit color assignment. Isolated
    vertices all land in color 0.
    """
    n = adjacency.shape[0]
    if n == 0:
        return []
    graph = nx.from_scipy_sparse_array(adjacency)
    colors = nx.greedy_color(graph, strategy="largest_first")
    n_colors = max(colors.values()) + 1
    classes: list[list[int]] = [[] for _ in range(n_colors)]
    for v, c in colors.items():
        classes[c].append(v)
    return [np.array(sorted(c), dtype=np.intp) for c in classes]


def is_valid_coloring(
    adjacency: scipy.sparse.sparray, classes: list[NDArray[np.intp]]
) -> bool:
    """True if the classes cover every vertex once and no class holds an edge."""
    n = adjacency.shape[0]
    covered = np.concatenate(classes) if classes else np.zeros(0, dtype=np.intp)
    if covered.size != n or not np.array_equal(np.sort(covered), np.arange(n)):
        return False
    adj = scipy.sparse.csr_array(adjacency)
    for idx in classes:
        if adj[idx][:, idx].count_nonzero() != 0:
            return False
    return True


def resolve_algorithm(requested: Algorithm, n_colors: int, n_spins: int) -> Algorithm:
    """Resolve DEFAULT: coloring pays off only if some class holds several spins."""
    if requested is not Algorithm.DEFAULT:
        return requested
    if n_colors < n_spins:
        return Algorithm.COLORING
    return Algorithm.NAIVE


def _accept(
    delta_e: NDArray | float, uniform: NDArray | float, temperature: float
) -> NDArray | bool:
    """Metropolis rule; ties (dE == 0) are always accepted."""
    if temperature <= 0:
        return delta_e <= 0
    boltzmann = np.exp(np.minimum(-np.asarray(delta_e) / temperature, 0.0))
    return (delta_e <= 0) | (uniform < boltzmann)


class UpdateScheduler:
    """Runs one Metropolis sweep over a Trotter ensemble.

    Color classes are computed once per problem and reused for every step
    and replica. The coupling model, the classes and the schedule values are
    read-only during a sweep; only the spin ensemble is written.
    """

    def __init__(
        self,
        model,
        algorithm: Algorithm = Algorithm.DEFAULT,
        n_workers: int = 1,
        reporter: ErrorReporter = default_reporter,
    ) -> None:
        reporter.throw_if(
            n_workers < 1,
            ErrorKind.INVALID_ARGUMENT,
            f"n_workers must be >= 1, got {n_workers}",
        )
        self.model = model
        self.requested = algorithm
        self.n_workers = n_workers
        self.reporter = reporter
        self._classes: list[NDArray[np.intp]] | None = None
        self._algorithm: Algorithm | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._seed = 0
        self._worker_rngs: list[np.random.Generator] = []
        self._replica_rngs: list[np.random.Generator] = []

    @property
    def color_classes(self) -> list[NDArray[np.intp]]:
        if self._classes is None:
            classes = self.model.independent_sets()
            if classes is None:
                classes = greedy_coloring(self.model.interaction_graph())
            self._classes = classes
            logger.debug(
                "Color classes: %d for %d spins", len(classes), self.model.n_spins
            )
        return self._classes

    @property
    def algorithm(self) -> Algorithm:
        if self._algorithm is None:
            if self.requested is Algorithm.DEFAULT:
                self._algorithm = resolve_algorithm(
                    self.requested, len(self.color_classes), self.model.n_spins
                )
            else:
                self._algorithm = self.requested
            logger.info("Update algorithm: %s", self._algorithm.value)
        return self._algorithm

    def color_of(self) -> NDArray[np.intp]:
        """Color index of every spin."""
        colors = np.empty(self.model.n_spins, dtype=np.intp)
        for c, idx in enumerate(self.color_classes):
            colors[idx] = c
        return colors

    def seed(self, seed: int, n_trotters: int) -> None:
        """Derive one generator per worker and one per replica from ``seed``."""
        self._seed = seed
        self._worker_rngs = [
            np.random.default_rng(np.random.SeedSequence([seed, 0, k]))
            for k in range(self.n_workers)
        ]
        self._replica_rngs = [
            np.random.default_rng(np.random.SeedSequence([seed, 1, r]))
            for r in range(n_trotters)
        ]

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _delta_energy(
        self,
        q: NDArray[np.int8],
        r: int,
        idx: NDArray[np.intp] | int,
        jp: float,
    ) -> NDArray | float:
        m = q.shape[0]
        s = q[r, idx]
        dE = -2.0 * self.model.method.sign * s * self.model.local_fields_at(q[r], idx) / m
        if m > 1:
            dE = dE + 2.0 * jp * s * (
                q[(r - 1) % m, idx].astype(np.int16) + q[(r + 1) % m, idx]
            )
        return dE

    def sweep(self, q: NDArray[np.int8], gamma: float, temperature: float) -> int:
        """Update every spin of every replica once, in place.

        Returns the number of accepted flips.
        """
        self.reporter.abort_if(
            q.ndim != 2 or q.shape[1] != self.model.n_spins,
            ErrorKind.SHAPE_MISMATCH,
            f"spin ensemble shape {q.shape} does not match N={self.model.n_spins}",
        )
        self.reporter.abort_if(
            len(self._replica_rngs) != q.shape[0],
            ErrorKind.INVALID_STATE,
            "scheduler was not seeded for this Trotter count",
        )
        m = q.shape[0]
        jp = j_perp(gamma, temperature, m) if m > 1 else 0.0
        if self.algorithm is Algorithm.NAIVE:
            return self._naive_sweep(q, jp, temperature)
        return self._coloring_sweep(q, jp, temperature)

    def _naive_sweep(self, q: NDArray[np.int8], jp: float, temperature: float) -> int:
        accepted = 0
        m, n = q.shape
        for r in range(m):
            rng = self._replica_rngs[r]
            for i in range(n):
                dE = float(self._delta_energy(q, r, i, jp))
                if _accept(dE, rng.random(), temperature):
                    q[r, i] = -q[r, i]
                    accepted += 1
        return accepted

    def _evaluate_chunk(
        self,
        q: NDArray[np.int8],
        r: int,
        chunk: NDArray[np.intp],
        jp: float,
        temperature: float,
        worker: int,
    ) -> NDArray[np.intp]:
        """Indices in ``chunk`` whose flips are accepted. Reads ``q`` only."""
        uniform = self._worker_rngs[worker].random(chunk.size)
        if chunk.size == 0:
            return chunk
        dE = self._delta_energy(q, r, chunk, jp)
        return chunk[_accept(dE, uniform, temperature)]

    def _coloring_sweep(
        self, q: NDArray[np.int8], jp: float, temperature: float
    ) -> int:
        accepted = 0
        m = q.shape[0]
        chunked = [np.array_split(idx, self.n_workers) for idx in self.color_classes]
        for r in range(m):
            for chunks in chunked:
                if self.n_workers == 1:
                    flips = [self._evaluate_chunk(q, r, chunks[0], jp, temperature, 0)]
                else:
                    if self._executor is None:
                        self._executor = ThreadPoolExecutor(
                            max_workers=self.n_workers,
                            thread_name_prefix="sqa-worker",
                        )
                    futures = [
                        self._executor.submit(
                            self._evaluate_chunk, q, r, chunk, jp, temperature, k
                        )
                        for k, chunk in enumerate(chunks)
                    ]
                    # barrier: every worker of this class finishes before any commit
                    flips = [f.result() for f in futures]
                for idx in flips:
                    q[r, idx] = -q[r, idx]
                    accepted += idx.size
        return accepted
