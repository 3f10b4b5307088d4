"""Enum and dataclass definitions for the SQA engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterator, Sequence

import numpy as np
from numpy.typing import NDArray


class Algorithm(enum.Enum):
    """Update scheduler strategy."""

    DEFAULT = "default"
    NAIVE = "naive"
    COLORING = "coloring"


def algo_to_name(algo: Algorithm) -> str:
    return algo.value


def algo_from_name(name: str) -> Algorithm:
    """Parse an algorithm name. Unknown names raise ValueError."""
    return Algorithm(name.lower())


class OptimizeMethod(enum.Enum):
    """Sign convention of the objective."""

    MINIMIZE = "minimize"
    MAXIMIZE = "maximize"

    @property
    def sign(self) -> int:
        """+1 for minimization, -1 for maximization.

        Multiplying an objective by ``sign`` always yields an energy to
        minimize, so the Monte Carlo kernels only ever minimize.
        """
        return 1 if self is OptimizeMethod.MINIMIZE else -1

    def is_better(self, a: float, b: float) -> bool:
        """True if objective value ``a`` is strictly better than ``b``."""
        return self.sign * a < self.sign * b


class AnnealerState(enum.Flag):
    """Configuration flags an annealer must collect before it can run."""

    NONE = 0
    RAND_SEED_GIVEN = 1
    N_TROTTERS_GIVEN = 2
    Q_SET = 4
    READY = 7


@dataclass(frozen=True)
class AnnealerStateMask:
    """Immutable set of :class:`AnnealerState` flags."""

    flags: AnnealerState = AnnealerState.NONE

    def has(self, flag: AnnealerState) -> bool:
        return (self.flags & flag) == flag

    def with_(self, flag: AnnealerState) -> AnnealerStateMask:
        return AnnealerStateMask(self.flags | flag)

    def without(self, flag: AnnealerState) -> AnnealerStateMask:
        return AnnealerStateMask(self.flags & ~flag)

    @property
    def is_ready(self) -> bool:
        return self.has(AnnealerState.READY)

    def missing(self) -> list[str]:
        """Names of the flags still required for READY."""
        return [
            f.name
            for f in (
                AnnealerState.RAND_SEED_GIVEN,
                AnnealerState.N_TROTTERS_GIVEN,
                AnnealerState.Q_SET,
            )
            if not self.has(f)
        ]


@dataclass
class Preferences:
    """Annealer preferences; ``None`` means not given."""

    algorithm: Algorithm | str | None = None
    n_trotters: int | None = None
    seed: int | None = None
    n_workers: int | None = None


@dataclass(frozen=True)
class ScheduleStep:
    """One point of an annealing schedule."""

    gamma: float        # transverse field strength
    temperature: float  # effective temperature T (0 allowed)


@dataclass
class AnnealSchedule:
    """Sequence of (gamma, temperature) steps driving one anneal."""

    steps: list[ScheduleStep] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[ScheduleStep]:
        return iter(self.steps)

    def __getitem__(self, idx: int) -> ScheduleStep:
        return self.steps[idx]

    @classmethod
    def from_arrays(
        cls, gammas: Sequence[float], temperatures: Sequence[float] | float
    ) -> AnnealSchedule:
        """Build from parallel arrays; a scalar temperature is held constant."""
        gammas = np.asarray(gammas, dtype=np.float64).ravel()
        temps = np.broadcast_to(
            np.asarray(temperatures, dtype=np.float64), gammas.shape
        )
        return cls([ScheduleStep(float(g), float(t)) for g, t in zip(gammas, temps)])

    @classmethod
    def linear(
        cls,
        n_steps: int = 100,
        gamma_initial: float = 5.0,
        gamma_final: float = 0.01,
        temperature_initial: float = 0.02,
        temperature_final: float = 0.02,
    ) -> AnnealSchedule:
        """Linear interpolation of both gamma and temperature."""
        frac = np.linspace(0.0, 1.0, n_steps) if n_steps > 1 else np.zeros(n_steps)
        gammas = gamma_initial + frac * (gamma_final - gamma_initial)
        temps = temperature_initial + frac * (temperature_final - temperature_initial)
        return cls.from_arrays(gammas, temps)

    @classmethod
    def geometric(
        cls,
        n_steps: int = 100,
        gamma_initial: float = 5.0,
        gamma_final: float = 0.01,
        temperature_initial: float = 0.02,
        temperature_final: float = 0.02,
    ) -> AnnealSchedule:
        """Geometric decay, i.e. ``G *= tau`` every step."""
        if n_steps <= 1:
            return cls.from_arrays([gamma_final] * n_steps, temperature_final)
        frac = np.linspace(0.0, 1.0, n_steps)
        gammas = gamma_initial * (gamma_final / gamma_initial) ** frac
        if temperature_initial > 0 and temperature_final > 0:
            temps = temperature_initial * (temperature_final / temperature_initial) ** frac
        else:
            temps = temperature_initial + frac * (temperature_final - temperature_initial)
        return cls.from_arrays(gammas, temps)


@dataclass
class TrajectoryPoint:
    """Best energy seen at a point during annealing."""

    step: int
    gamma: float
    temperature: float
    energy: float
    accepted_flips: int


@dataclass
class AnnealResult:
    """Result of one annealing run.

    Dense problems fill ``final_x`` / ``final_q`` with arrays of shape
    ``(m, N)``. Bipartite problems store ``(x0, x1)`` tuples of
    ``(m, N0)`` and ``(m, N1)`` arrays.
    """

    final_x: NDArray[np.int8] | tuple[NDArray[np.int8], NDArray[np.int8]]
    final_q: NDArray[np.int8] | tuple[NDArray[np.int8], NDArray[np.int8]]
    final_energies: NDArray[np.float64]
    best_energy: float
    best_x: NDArray[np.int8] | tuple[NDArray[np.int8], NDArray[np.int8]]
    best_step: int
    best_replica: int
    algorithm: str
    n_sweeps: int
    method: OptimizeMethod = OptimizeMethod.MINIMIZE
    trajectory: list[TrajectoryPoint] = field(default_factory=list)
