"""Simulated Quantum Annealing engine.

Trotter-replica Monte Carlo over dense and bipartite coupling graphs, with
graph-coloring parallel sweeps and a configuration state machine that gates
annealing until the seed, Trotter count and initial spins are set.
"""

from __future__ import annotations

from quantum_annealer.sqa.annealer import BipartiteGraphAnnealer, DenseGraphAnnealer
from quantum_annealer.sqa.brute_force import BipartiteGraphBFSearcher, DenseGraphBFSearcher
from quantum_annealer.sqa.driver import AnnealingDriver, anneal
from quantum_annealer.sqa.errors import ErrorKind, ErrorReporter, SolverError
from quantum_annealer.sqa.hamiltonian import BipartiteGraph, DenseGraph, is_symmetric
from quantum_annealer.sqa.types import (
    Algorithm,
    AnnealerState,
    AnnealResult,
    AnnealSchedule,
    OptimizeMethod,
    Preferences,
    ScheduleStep,
)

__all__ = [
    "Algorithm",
    "AnnealResult",
    "AnnealSchedule",
    "AnnealerState",
    "AnnealingDriver",
    "BipartiteGraph",
    "BipartiteGraphAnnealer",
    "BipartiteGraphBFSearcher",
    "DenseGraph",
    "DenseGraphAnnealer",
    "DenseGraphBFSearcher",
    "ErrorKind",
    "ErrorReporter",
    "OptimizeMethod",
    "Preferences",
    "ScheduleStep",
    "SolverError",
    "anneal",
    "is_symmetric",
]
