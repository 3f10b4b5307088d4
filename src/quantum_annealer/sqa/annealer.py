"""Annealers for dense and bipartite graphs.

An annealer owns one problem, its Trotter ensemble and a configuration mask.
Annealing is only allowed once the seed, the Trotter count and the initial
spins have all been given (``AnnealerState.READY``). Loading a new problem
clears the mask, so a stale seed or Trotter count from a previous problem is
never reused silently.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import fields

import numpy as np
from numpy.typing import ArrayLike, NDArray

from quantum_annealer.sqa.bits import q_from_x, x_from_q
from quantum_annealer.sqa.coloring import UpdateScheduler
from quantum_annealer.sqa.errors import ErrorKind, ErrorReporter, default_reporter
from quantum_annealer.sqa.hamiltonian import BipartiteGraph, DenseGraph
from quantum_annealer.sqa.types import (
    Algorithm,
    AnnealerState,
    AnnealerStateMask,
    OptimizeMethod,
    Preferences,
    algo_from_name,
)

logger = logging.getLogger(__name__)


class Annealer(ABC):
    """Configuration state machine shared by the graph annealers."""

    def __init__(self, reporter: ErrorReporter = default_reporter) -> None:
        self.reporter = reporter
        self.model: DenseGraph | BipartiteGraph | None = None
        self.scheduler: UpdateScheduler | None = None
        self._state = AnnealerStateMask()
        self._algorithm = Algorithm.DEFAULT
        self._n_workers = 1
        self._seed: int | None = None
        self._n_trotters: int | None = None
        self._rng: np.random.Generator | None = None
        self._q: NDArray[np.int8] | None = None

    # -- state ---------------------------------------------------------

    @property
    def state(self) -> AnnealerStateMask:
        return self._state

    def _require_model(self) -> DenseGraph | BipartiteGraph:
        self.reporter.throw_if(
            self.model is None, ErrorKind.NOT_CONFIGURED, "no problem loaded"
        )
        return self.model

    def _require(self, flags: AnnealerState, action: str) -> None:
        missing = [
            f.name
            for f in (
                AnnealerState.RAND_SEED_GIVEN,
                AnnealerState.N_TROTTERS_GIVEN,
                AnnealerState.Q_SET,
            )
            if f & flags and not self._state.has(f)
        ]
        self.reporter.throw_if(
            bool(missing),
            ErrorKind.NOT_CONFIGURED,
            f"{action} requires {', '.join(missing)}",
        )

    def _load(self, model: DenseGraph | BipartiteGraph) -> None:
        """Install a new problem and reset every configuration flag."""
        if self.scheduler is not None:
            self.scheduler.close()
        self.model = model
        self._state = AnnealerStateMask()
        self._seed = None
        self._n_trotters = None
        self._rng = None
        self._q = None
        self._build_scheduler()

    def _build_scheduler(self) -> None:
        if self.scheduler is not None:
            self.scheduler.close()
        self.scheduler = UpdateScheduler(
            self.model, self._algorithm, self._n_workers, self.reporter
        )
        self._reseed()

    def _reseed(self) -> None:
        if self._seed is None:
            return
        self._rng = np.random.default_rng(np.random.SeedSequence([self._seed, 2]))
        if self._n_trotters is not None and self.scheduler is not None:
            self.scheduler.seed(self._seed, self._n_trotters)

    def get_problem_size(self) -> int:
        return self._require_model().n_spins

    @property
    def algorithm_name(self) -> str:
        """Algorithm actually used, after DEFAULT resolution."""
        self._require_model()
        return self.scheduler.algorithm.value

    # -- configuration -------------------------------------------------

    def set_seed(self, seed: int) -> None:
        self.reporter.throw_if(
            int(seed) < 0, ErrorKind.INVALID_ARGUMENT, f"seed must be >= 0, got {seed}"
        )
        # the same seed again restarts every generator from that seed
        self._seed = int(seed)
        self._state = self._state.with_(AnnealerState.RAND_SEED_GIVEN)
        self._reseed()

    def set_trotters(self, n_trotters: int) -> None:
        self.reporter.throw_if(
            int(n_trotters) < 1,
            ErrorKind.INVALID_ARGUMENT,
            f"Trotter count must be >= 1, got {n_trotters}",
        )
        n_trotters = int(n_trotters)
        if (
            self._state.has(AnnealerState.N_TROTTERS_GIVEN)
            and self._n_trotters == n_trotters
        ):
            return
        self._n_trotters = n_trotters
        self._state = self._state.with_(AnnealerState.N_TROTTERS_GIVEN)
        # the ensemble no longer has the right number of rows
        if self._q is not None and self._q.shape[0] != n_trotters:
            logger.debug("Trotter count changed to %d, spins cleared", n_trotters)
            self._q = None
            self._state = self._state.without(AnnealerState.Q_SET)
        self._reseed()

    def _parse_algorithm(self, algorithm: Algorithm | str) -> Algorithm:
        if isinstance(algorithm, Algorithm):
            return algorithm
        try:
            return algo_from_name(str(algorithm))
        except ValueError:
            self.reporter.throw(
                ErrorKind.INVALID_ARGUMENT, f"unknown algorithm {algorithm!r}"
            )

    def set_algorithm(self, algorithm: Algorithm | str) -> None:
        algorithm = self._parse_algorithm(algorithm)
        if algorithm is self._algorithm:
            return
        self._algorithm = algorithm
        if self.model is not None:
            self._build_scheduler()

    def set_n_workers(self, n_workers: int) -> None:
        self.reporter.throw_if(
            int(n_workers) < 1,
            ErrorKind.INVALID_ARGUMENT,
            f"n_workers must be >= 1, got {n_workers}",
        )
        if int(n_workers) == self._n_workers:
            return
        self._n_workers = int(n_workers)
        if self.model is not None:
            self._build_scheduler()

    def set_preferences(self, preferences: Preferences | None = None, **kwargs) -> None:
        """Apply preferences from a record and/or keyword arguments.

        Fields left as ``None`` are not touched. Every value is checked
        before any is applied, so a rejected call changes nothing.
        """
        known = {f.name for f in fields(Preferences)}
        unknown = set(kwargs) - known
        self.reporter.throw_if(
            bool(unknown),
            ErrorKind.INVALID_ARGUMENT,
            f"unknown preference(s): {', '.join(sorted(unknown))}",
        )
        values = {}
        if preferences is not None:
            values.update({f.name: getattr(preferences, f.name) for f in fields(Preferences)})
        values.update(kwargs)
        values = {k: v for k, v in values.items() if v is not None}

        if "algorithm" in values:
            values["algorithm"] = self._parse_algorithm(values["algorithm"])
        for name in ("n_trotters", "n_workers"):
            self.reporter.throw_if(
                name in values and int(values[name]) < 1,
                ErrorKind.INVALID_ARGUMENT,
                f"{name} must be >= 1, got {values.get(name)}",
            )
        self.reporter.throw_if(
            "seed" in values and int(values["seed"]) < 0,
            ErrorKind.INVALID_ARGUMENT,
            f"seed must be >= 0, got {values.get('seed')}",
        )

        if "algorithm" in values:
            self.set_algorithm(values["algorithm"])
        if "n_workers" in values:
            self.set_n_workers(values["n_workers"])
        if "n_trotters" in values:
            self.set_trotters(values["n_trotters"])
        if "seed" in values:
            self.set_seed(values["seed"])

    def get_preferences(self) -> Preferences:
        return Preferences(
            algorithm=self._algorithm,
            n_trotters=self._n_trotters,
            seed=self._seed,
            n_workers=self._n_workers,
        )

    def _check_spins(self, q: NDArray) -> NDArray[np.int8]:
        self.reporter.throw_if(
            not np.all((q == 1) | (q == -1)),
            ErrorKind.INVALID_ARGUMENT,
            "spin values must be -1 or +1",
        )
        return q.astype(np.int8)

    def _set_ensemble(self, q: NDArray) -> None:
        """Install a spin ensemble of shape (m, N) or broadcast a single row."""
        model = self._require_model()
        q = np.asarray(q)
        if q.ndim == 1:
            self._require(AnnealerState.N_TROTTERS_GIVEN, "set_q")
            self.reporter.abort_if(
                q.shape != (model.n_spins,),
                ErrorKind.SHAPE_MISMATCH,
                f"spin vector length {q.shape} != N={model.n_spins}",
            )
            q = np.tile(self._check_spins(q), (self._n_trotters, 1))
        else:
            self.reporter.abort_if(
                q.ndim != 2 or q.shape[1] != model.n_spins or q.shape[0] < 1,
                ErrorKind.SHAPE_MISMATCH,
                f"spin matrix shape {q.shape} does not match N={model.n_spins}",
            )
            q = self._check_spins(q)
            self.set_trotters(q.shape[0])
        self._q = q.copy()
        self._state = self._state.with_(AnnealerState.Q_SET)

    def randomize_spin(self) -> None:
        """Draw a random ensemble from the configured seed."""
        model = self._require_model()
        self._require(
            AnnealerState.RAND_SEED_GIVEN | AnnealerState.N_TROTTERS_GIVEN,
            "randomize_spin",
        )
        self._q = self._rng.choice(
            np.array([-1, 1], dtype=np.int8), size=(self._n_trotters, model.n_spins)
        )
        logger.debug("Random spins: m=%d, N=%d", self._n_trotters, model.n_spins)
        self._state = self._state.with_(AnnealerState.Q_SET)

    def prepare(self) -> None:
        """Fill in whatever the caller has not configured yet.

        Seed from OS entropy, Trotter count N/4 (at least 1), random spins.
        """
        model = self._require_model()
        if not self._state.has(AnnealerState.RAND_SEED_GIVEN):
            self.set_seed(int(np.random.SeedSequence().entropy % (1 << 32)))
            logger.info("No seed given, using %d", self._seed)
        if not self._state.has(AnnealerState.N_TROTTERS_GIVEN):
            self.set_trotters(max(model.n_spins // 4, 1))
        if not self._state.has(AnnealerState.Q_SET):
            self.randomize_spin()

    # -- annealing -----------------------------------------------------

    def anneal_one_step(self, gamma: float, temperature: float) -> int:
        """One sweep over every spin of every replica.

        Returns the number of accepted flips.
        """
        self._require_model()
        self._require(AnnealerState.READY, "anneal")
        return self.scheduler.sweep(self._q, gamma, temperature)

    def _require_q(self) -> NDArray[np.int8]:
        self._require_model()
        self._require(AnnealerState.Q_SET, "reading spins")
        return self._q

    @abstractmethod
    def replica_energies(self) -> NDArray[np.float64]:
        """Objective value of every replica."""

    @abstractmethod
    def replica_bits(self, r: int):
        """Bit configuration of replica ``r`` (copy)."""

    def close(self) -> None:
        if self.scheduler is not None:
            self.scheduler.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class DenseGraphAnnealer(Annealer):
    """SQA annealer for dense QUBO / Ising problems."""

    def __init__(
        self,
        W: ArrayLike | None = None,
        method: OptimizeMethod = OptimizeMethod.MINIMIZE,
        reporter: ErrorReporter = default_reporter,
        **preferences,
    ) -> None:
        super().__init__(reporter)
        if W is not None:
            self.set_qubo(W, method)
        if preferences:
            self.set_preferences(**preferences)

    def set_qubo(
        self, W: ArrayLike, method: OptimizeMethod = OptimizeMethod.MINIMIZE
    ) -> None:
        self._load(DenseGraph.from_qubo(W, method, self.reporter))

    def set_hamiltonian(
        self,
        h: ArrayLike,
        J: ArrayLike,
        c: float = 0.0,
        method: OptimizeMethod = OptimizeMethod.MINIMIZE,
    ) -> None:
        self._load(DenseGraph.from_hamiltonian(h, J, c, method, self.reporter))

    def get_hamiltonian(self) -> tuple[NDArray, NDArray, float]:
        return self._require_model().get_hamiltonian()

    def set_q(self, q: ArrayLike) -> None:
        """Set all replicas to one spin vector."""
        self._set_ensemble(np.asarray(q).reshape(-1))

    def set_qset(self, qs: ArrayLike) -> None:
        """Set the full (m, N) ensemble; m becomes the Trotter count."""
        self._set_ensemble(np.atleast_2d(np.asarray(qs)))

    def set_x(self, x: ArrayLike) -> None:
        self.set_q(q_from_x(x))

    def set_xset(self, xs: ArrayLike) -> None:
        self.set_qset(q_from_x(xs))

    def get_q(self) -> NDArray[np.int8]:
        return self._require_q().copy()

    def get_x(self) -> NDArray[np.int8]:
        return x_from_q(self._require_q())

    def get_E(self) -> NDArray[np.float64]:
        return self.replica_energies()

    def replica_energies(self) -> NDArray[np.float64]:
        return self.model.energies(x_from_q(self._require_q()))

    def replica_bits(self, r: int) -> NDArray[np.int8]:
        return x_from_q(self._require_q()[r])


class BipartiteGraphAnnealer(Annealer):
    """SQA annealer for bipartite QUBO / Ising problems."""

    def __init__(
        self,
        b0: ArrayLike | None = None,
        b1: ArrayLike | None = None,
        W: ArrayLike | None = None,
        method: OptimizeMethod = OptimizeMethod.MINIMIZE,
        reporter: ErrorReporter = default_reporter,
        **preferences,
    ) -> None:
        super().__init__(reporter)
        if W is not None:
            self.set_qubo(b0, b1, W, method)
        if preferences:
            self.set_preferences(**preferences)

    def set_qubo(
        self,
        b0: ArrayLike,
        b1: ArrayLike,
        W: ArrayLike,
        method: OptimizeMethod = OptimizeMethod.MINIMIZE,
    ) -> None:
        self._load(BipartiteGraph.from_qubo(b0, b1, W, method, self.reporter))

    def set_hamiltonian(
        self,
        h0: ArrayLike,
        h1: ArrayLike,
        J: ArrayLike,
        c: float = 0.0,
        method: OptimizeMethod = OptimizeMethod.MINIMIZE,
    ) -> None:
        self._load(BipartiteGraph.from_hamiltonian(h0, h1, J, c, method, self.reporter))

    def get_hamiltonian(self) -> tuple[NDArray, NDArray, NDArray, float]:
        return self._require_model().get_hamiltonian()

    def get_problem_size(self) -> tuple[int, int]:
        model = self._require_model()
        return model.n0, model.n1

    def set_q(self, q0: ArrayLike, q1: ArrayLike) -> None:
        model = self._require_model()
        self._set_ensemble(model.join(np.ravel(q0), np.ravel(q1)))

    def set_qset(self, q0s: ArrayLike, q1s: ArrayLike) -> None:
        model = self._require_model()
        q0s = np.atleast_2d(np.asarray(q0s))
        q1s = np.atleast_2d(np.asarray(q1s))
        self.reporter.abort_if(
            q0s.shape[0] != q1s.shape[0],
            ErrorKind.SHAPE_MISMATCH,
            f"replica counts differ: {q0s.shape[0]} vs {q1s.shape[0]}",
        )
        self._set_ensemble(model.join(q0s, q1s))

    def set_x(self, x0: ArrayLike, x1: ArrayLike) -> None:
        self.set_q(q_from_x(x0), q_from_x(x1))

    def set_xset(self, x0s: ArrayLike, x1s: ArrayLike) -> None:
        self.set_qset(q_from_x(x0s), q_from_x(x1s))

    def get_q(self) -> tuple[NDArray[np.int8], NDArray[np.int8]]:
        q = self._require_q()
        q0, q1 = self.model.split(q)
        return q0.copy(), q1.copy()

    def get_x(self) -> tuple[NDArray[np.int8], NDArray[np.int8]]:
        q = self._require_q()
        q0, q1 = self.model.split(q)
        return x_from_q(q0), x_from_q(q1)

    def get_E(self) -> NDArray[np.float64]:
        return self.replica_energies()

    def replica_energies(self) -> NDArray[np.float64]:
        x0, x1 = self.get_x()
        return self.model.energies(x0, x1)

    def replica_bits(self, r: int) -> tuple[NDArray[np.int8], NDArray[np.int8]]:
        q = self._require_q()
        q0, q1 = self.model.split(q[r])
        return x_from_q(q0), x_from_q(q1)
