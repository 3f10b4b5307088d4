"""Coupling matrix models for dense and bipartite QUBO / Ising problems.

A dense problem is either a symmetric QUBO matrix W,

    E(x) = x^T W x,      x in {0, 1}^N   (diagonal = linear bias)

or an Ising Hamiltonian

    E(q) = c + h^T q + q^T J q,      q in {-1, +1}^N.

A bipartite problem has two variable sets with their own bias vectors and one
interconnection matrix (no coupling inside a set):

    E(x0, x1) = b0^T x0 + b1^T x1 + x0^T W x1
    E(q0, q1) = c + h0^T q0 + h1^T q1 + q0^T J q1

QUBO input is converted to Ising form with x = (q + 1) / 2. The optimize
method is stored alongside and only enters through ``sign``; matrices are
never negated in place.
"""

from __future__ import annotations

import logging

import numpy as np
import scipy.sparse
from numpy.typing import ArrayLike, NDArray

from quantum_annealer.sqa.bits import q_from_x
from quantum_annealer.sqa.errors import ErrorKind, ErrorReporter, default_reporter
from quantum_annealer.sqa.types import OptimizeMethod

logger = logging.getLogger(__name__)

_TOLERANCES = {
    np.dtype(np.float32): (1e-5, 1e-6),
    np.dtype(np.float64): (1e-12, 1e-12),
}


def _as_real(a: ArrayLike) -> NDArray[np.floating]:
    """float32/float64 arrays keep their precision; everything else is float64."""
    a = np.asarray(a)
    if a.dtype in (np.float32, np.float64):
        return a
    return a.astype(np.float64)


def is_symmetric(W: ArrayLike) -> bool:
    """True iff W is square and W[i, j] == W[j, i] within the dtype tolerance."""
    W = np.asarray(W)
    if W.ndim != 2 or W.shape[0] != W.shape[1]:
        return False
    if W.dtype not in _TOLERANCES:
        return bool(np.array_equal(W, W.T))
    rtol, atol = _TOLERANCES[W.dtype]
    return bool(np.allclose(W, W.T, rtol=rtol, atol=atol))


def symmetrize(W: ArrayLike) -> NDArray[np.floating]:
    """Return (W + W^T) / 2. Never applied implicitly."""
    W = _as_real(W)
    return (W + W.T) / 2


class DenseGraph:
    """Dense-graph problem held in Ising form.

    Build with :meth:`from_qubo` or :meth:`from_hamiltonian`.
    """

    def __init__(
        self,
        h: NDArray[np.floating],
        J: NDArray[np.floating],
        c: float,
        method: OptimizeMethod = OptimizeMethod.MINIMIZE,
        W: NDArray[np.floating] | None = None,
        reporter: ErrorReporter = default_reporter,
    ) -> None:
        self.h = h
        self.J = J
        self.c = float(c)
        self.method = method
        self.W = W
        self.reporter = reporter
        self.n_spins = int(h.shape[0])
        self.dtype = h.dtype
        # off-diagonal part drives the local fields; J_ii only adds a constant
        self._J_off = J.copy()
        np.fill_diagonal(self._J_off, 0)

    @classmethod
    def from_qubo(
        cls,
        W: ArrayLike,
        method: OptimizeMethod = OptimizeMethod.MINIMIZE,
        reporter: ErrorReporter = default_reporter,
    ) -> DenseGraph:
        """Load a symmetric QUBO matrix.

        J = W / 4 (zero diagonal), h_i = 1/2 sum_j W_ij,
        c = 1/4 sum_ij W_ij + 1/4 sum_i W_ii.
        """
        W = _as_real(W)
        reporter.abort_if(
            W.ndim != 2 or W.shape[0] != W.shape[1],
            ErrorKind.SHAPE_MISMATCH,
            f"QUBO matrix must be square, got shape {W.shape}",
        )
        reporter.throw_if(
            not is_symmetric(W),
            ErrorKind.ASYMMETRIC_MATRIX,
            "QUBO matrix is not symmetric",
        )
        J = W / 4
        np.fill_diagonal(J, 0)
        h = W.sum(axis=1) / 2
        c = float(W.sum() / 4 + np.trace(W) / 4)
        logger.info("Loaded dense QUBO: N=%d, %s", W.shape[0], method.value)
        return cls(h, J, c, method, W=W.copy(), reporter=reporter)

    @classmethod
    def from_hamiltonian(
        cls,
        h: ArrayLike,
        J: ArrayLike,
        c: float = 0.0,
        method: OptimizeMethod = OptimizeMethod.MINIMIZE,
        reporter: ErrorReporter = default_reporter,
    ) -> DenseGraph:
        """Load an Ising Hamiltonian E(q) = c + h^T q + q^T J q."""
        J = _as_real(J)
        h = np.asarray(h, dtype=J.dtype)
        reporter.abort_if(
            J.ndim != 2 or J.shape[0] != J.shape[1],
            ErrorKind.SHAPE_MISMATCH,
            f"J must be square, got shape {J.shape}",
        )
        reporter.abort_if(
            h.shape != (J.shape[0],),
            ErrorKind.SHAPE_MISMATCH,
            f"h shape {h.shape} does not match J shape {J.shape}",
        )
        reporter.throw_if(
            not is_symmetric(J), ErrorKind.ASYMMETRIC_MATRIX, "J is not symmetric"
        )
        logger.info("Loaded dense Hamiltonian: N=%d, %s", J.shape[0], method.value)
        return cls(h.copy(), J.copy(), c, method, reporter=reporter)

    def get_hamiltonian(self) -> tuple[NDArray, NDArray, float]:
        return self.h.copy(), self.J.copy(), self.c

    def ising_energies(self, Q: ArrayLike) -> NDArray[np.float64]:
        """Energy of each row of a (k, N) spin matrix."""
        Q = np.atleast_2d(np.asarray(Q, dtype=self.dtype))
        quad = np.einsum("ri,ij,rj->r", Q, self.J, Q)
        return (self.c + Q @ self.h + quad).astype(np.float64)

    def ising_energy(self, q: ArrayLike) -> float:
        return float(self.ising_energies(q)[0])

    def energies(self, X: ArrayLike) -> NDArray[np.float64]:
        """Objective value of each row of a (k, N) bit matrix."""
        X = np.atleast_2d(np.asarray(X))
        if self.W is None:
            return self.ising_energies(q_from_x(X))
        Xr = X.astype(self.dtype)
        return np.einsum("ri,ij,rj->r", Xr, self.W, Xr).astype(np.float64)

    def energy(self, x: ArrayLike) -> float:
        """Objective value of one bit vector."""
        return float(self.energies(x)[0])

    def signed_energy(
        self, q: ArrayLike, method: OptimizeMethod | None = None
    ) -> float:
        """Energy in the minimization frame of ``method`` (default: own)."""
        method = method or self.method
        return method.sign * self.ising_energy(q)

    def local_fields_at(self, row: NDArray, idx: NDArray | int) -> NDArray:
        """h_i + 2 (J q)_i for the spins ``idx`` of one spin row."""
        return self.h[idx] + 2 * (self._J_off[idx] @ row)

    def local_fields(self, q: ArrayLike) -> NDArray:
        """h + 2 J q for a vector or for every row of an ensemble."""
        q = np.asarray(q, dtype=self.dtype)
        return self.h + 2 * (q @ self._J_off)

    def delta_energy(self, q: ArrayLike, i: int) -> float:
        """Signed energy change from flipping spin ``i``."""
        q = np.asarray(q, dtype=self.dtype)
        return float(-2 * self.method.sign * q[i] * self.local_fields_at(q, i))

    def interaction_graph(self) -> scipy.sparse.csr_array:
        """Adjacency of the nonzero off-diagonal couplings."""
        return scipy.sparse.csr_array((self._J_off != 0).astype(np.int8))

    def independent_sets(self) -> list[NDArray[np.intp]] | None:
        """Structural independent sets; dense graphs have none, so coloring decides."""
        return None


class BipartiteGraph:
    """Bipartite-graph problem held in Ising form.

    Spin rows are stored concatenated: the first N0 entries belong to set 0
    and the next N1 entries to set 1.
    """

    def __init__(
        self,
        h0: NDArray[np.floating],
        h1: NDArray[np.floating],
        J: NDArray[np.floating],
        c: float,
        method: OptimizeMethod = OptimizeMethod.MINIMIZE,
        qubo: tuple[NDArray, NDArray, NDArray] | None = None,
        reporter: ErrorReporter = default_reporter,
    ) -> None:
        self.h0 = h0
        self.h1 = h1
        self.J = J
        self.c = float(c)
        self.method = method
        self.qubo = qubo
        self.reporter = reporter
        self.n0, self.n1 = J.shape
        self.n_spins = self.n0 + self.n1
        self.dtype = J.dtype

    @staticmethod
    def _check_shapes(
        a0: NDArray, a1: NDArray, M: NDArray, reporter: ErrorReporter
    ) -> None:
        reporter.abort_if(
            M.ndim != 2,
            ErrorKind.SHAPE_MISMATCH,
            f"interconnection matrix must be 2-D, got shape {M.shape}",
        )
        reporter.abort_if(
            a0.shape != (M.shape[0],) or a1.shape != (M.shape[1],),
            ErrorKind.SHAPE_MISMATCH,
            f"bias shapes {a0.shape}, {a1.shape} do not match matrix {M.shape}",
        )

    @classmethod
    def from_qubo(
        cls,
        b0: ArrayLike,
        b1: ArrayLike,
        W: ArrayLike,
        method: OptimizeMethod = OptimizeMethod.MINIMIZE,
        reporter: ErrorReporter = default_reporter,
    ) -> BipartiteGraph:
        """Load E(x0, x1) = b0^T x0 + b1^T x1 + x0^T W x1, W of shape (N0, N1)."""
        W = _as_real(W)
        b0 = np.asarray(b0, dtype=W.dtype)
        b1 = np.asarray(b1, dtype=W.dtype)
        cls._check_shapes(b0, b1, W, reporter)
        J = W / 4
        h0 = b0 / 2 + W.sum(axis=1) / 4
        h1 = b1 / 2 + W.sum(axis=0) / 4
        c = float(b0.sum() / 2 + b1.sum() / 2 + W.sum() / 4)
        logger.info(
            "Loaded bipartite QUBO: N0=%d, N1=%d, %s", W.shape[0], W.shape[1], method.value
        )
        return cls(
            h0, h1, J, c, method, qubo=(b0.copy(), b1.copy(), W.copy()), reporter=reporter
        )

    @classmethod
    def from_hamiltonian(
        cls,
        h0: ArrayLike,
        h1: ArrayLike,
        J: ArrayLike,
        c: float = 0.0,
        method: OptimizeMethod = OptimizeMethod.MINIMIZE,
        reporter: ErrorReporter = default_reporter,
    ) -> BipartiteGraph:
        """Load E(q0, q1) = c + h0^T q0 + h1^T q1 + q0^T J q1."""
        J = _as_real(J)
        h0 = np.asarray(h0, dtype=J.dtype)
        h1 = np.asarray(h1, dtype=J.dtype)
        cls._check_shapes(h0, h1, J, reporter)
        logger.info(
            "Loaded bipartite Hamiltonian: N0=%d, N1=%d, %s",
            J.shape[0], J.shape[1], method.value,
        )
        return cls(h0.copy(), h1.copy(), J.copy(), c, method, reporter=reporter)

    def get_hamiltonian(self) -> tuple[NDArray, NDArray, NDArray, float]:
        return self.h0.copy(), self.h1.copy(), self.J.copy(), self.c

    def split(self, Q: ArrayLike) -> tuple[NDArray, NDArray]:
        """Split concatenated rows into (set 0, set 1) parts."""
        Q = np.asarray(Q)
        self.reporter.abort_if(
            Q.shape[-1] != self.n_spins,
            ErrorKind.SHAPE_MISMATCH,
            f"row length {Q.shape[-1]} != N0 + N1 = {self.n_spins}",
        )
        return Q[..., : self.n0], Q[..., self.n0 :]

    def join(self, A0: ArrayLike, A1: ArrayLike) -> NDArray:
        return np.concatenate([np.asarray(A0), np.asarray(A1)], axis=-1)

    def ising_energies(self, Q0: ArrayLike, Q1: ArrayLike) -> NDArray[np.float64]:
        """Energy of paired rows of (k, N0) and (k, N1) spin matrices."""
        Q0 = np.atleast_2d(np.asarray(Q0, dtype=self.dtype))
        Q1 = np.atleast_2d(np.asarray(Q1, dtype=self.dtype))
        quad = np.einsum("ri,ij,rj->r", Q0, self.J, Q1)
        return (self.c + Q0 @ self.h0 + Q1 @ self.h1 + quad).astype(np.float64)

    def ising_energy(self, q0: ArrayLike, q1: ArrayLike) -> float:
        return float(self.ising_energies(q0, q1)[0])

    def energies(self, X0: ArrayLike, X1: ArrayLike) -> NDArray[np.float64]:
        """Objective value of paired rows of (k, N0) and (k, N1) bit matrices."""
        X0 = np.atleast_2d(np.asarray(X0))
        X1 = np.atleast_2d(np.asarray(X1))
        if self.qubo is None:
            return self.ising_energies(q_from_x(X0), q_from_x(X1))
        b0, b1, W = self.qubo
        X0r = X0.astype(self.dtype)
        X1r = X1.astype(self.dtype)
        quad = np.einsum("ri,ij,rj->r", X0r, W, X1r)
        return (X0r @ b0 + X1r @ b1 + quad).astype(np.float64)

    def energy(self, x0: ArrayLike, x1: ArrayLike) -> float:
        return float(self.energies(x0, x1)[0])

    def signed_energy(
        self, q0: ArrayLike, q1: ArrayLike, method: OptimizeMethod | None = None
    ) -> float:
        method = method or self.method
        return method.sign * self.ising_energy(q0, q1)

    def local_fields_at(self, row: NDArray, idx: NDArray | int) -> NDArray:
        """Local fields for spins ``idx`` of one concatenated row.

        Set 0 spin i sees h0_i + (J q1)_i; set 1 spin j sees h1_j + (J^T q0)_j.
        """
        q0, q1 = row[: self.n0], row[self.n0 :]
        if np.isscalar(idx) or np.ndim(idx) == 0:
            i = int(idx)
            if i < self.n0:
                return self.h0[i] + self.J[i] @ q1
            j = i - self.n0
            return self.h1[j] + self.J[:, j] @ q0
        idx = np.asarray(idx)
        out = np.empty(idx.shape, dtype=self.dtype)
        in0 = idx < self.n0
        i0 = idx[in0]
        i1 = idx[~in0] - self.n0
        out[in0] = self.h0[i0] + self.J[i0] @ q1
        out[~in0] = self.h1[i1] + q0 @ self.J[:, i1]
        return out

    def local_fields(
        self, q0: ArrayLike, q1: ArrayLike
    ) -> tuple[NDArray, NDArray]:
        q0 = np.asarray(q0, dtype=self.dtype)
        q1 = np.asarray(q1, dtype=self.dtype)
        return self.h0 + q1 @ self.J.T, self.h1 + q0 @ self.J

    def delta_energy(self, q0: ArrayLike, q1: ArrayLike, i: int) -> float:
        """Signed energy change from flipping spin ``i`` of the concatenated row."""
        row = self.join(q0, q1).astype(self.dtype)
        return float(-2 * self.method.sign * row[i] * self.local_fields_at(row, i))

    def interaction_graph(self) -> scipy.sparse.csr_array:
        """Adjacency over the concatenated index space."""
        nz = scipy.sparse.csr_array((self.J != 0).astype(np.int8))
        return scipy.sparse.block_array([[None, nz], [nz.T, None]], format="csr")

    def independent_sets(self) -> list[NDArray[np.intp]]:
        """Each set is independent by construction."""
        return [
            np.arange(self.n0, dtype=np.intp),
            np.arange(self.n0, self.n_spins, dtype=np.intp),
        ]

