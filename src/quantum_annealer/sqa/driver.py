"""Annealing driver.

Walks a (gamma, temperature) schedule. At each step it runs one update
sweep over all Trotter replicas, evaluates the replica energies and keeps
the best configuration seen so far.
"""

from __future__ import annotations

import logging

import numpy as np

from quantum_annealer.sqa.annealer import Annealer
from quantum_annealer.sqa.bits import x_from_q
from quantum_annealer.sqa.errors import ErrorKind, ErrorReporter
from quantum_annealer.sqa.hamiltonian import BipartiteGraph
from quantum_annealer.sqa.types import (
    AnnealResult,
    AnnealSchedule,
    TrajectoryPoint,
)

logger = logging.getLogger(__name__)


def validate_schedule(schedule: AnnealSchedule, reporter: ErrorReporter) -> None:
    """Reject empty, non-finite, negative or non-monotonic schedules.

    Gamma and temperature must both be non-increasing.
    """
    reporter.throw_if(
        len(schedule) == 0, ErrorKind.MALFORMED_SCHEDULE, "schedule is empty"
    )
    gammas = np.array([s.gamma for s in schedule], dtype=np.float64)
    temps = np.array([s.temperature for s in schedule], dtype=np.float64)
    reporter.throw_if(
        not (np.all(np.isfinite(gammas)) and np.all(np.isfinite(temps))),
        ErrorKind.MALFORMED_SCHEDULE,
        "schedule contains non-finite values",
    )
    reporter.throw_if(
        bool(np.any(gammas < 0) or np.any(temps < 0)),
        ErrorKind.MALFORMED_SCHEDULE,
        "gamma and temperature must be >= 0",
    )
    reporter.throw_if(
        bool(np.any(np.diff(gammas) > 0)),
        ErrorKind.MALFORMED_SCHEDULE,
        "gamma must be non-increasing",
    )
    reporter.throw_if(
        bool(np.any(np.diff(temps) > 0)),
        ErrorKind.MALFORMED_SCHEDULE,
        "temperature must be non-increasing",
    )


class AnnealingDriver:
    """Runs a full schedule on a configured annealer."""

    def __init__(
        self,
        annealer: Annealer,
        schedule: AnnealSchedule,
        n_trajectory_points: int = 20,
    ) -> None:
        self.annealer = annealer
        self.schedule = schedule
        self.n_trajectory_points = n_trajectory_points
        self.steps_done = 0

    def _check_ready(self) -> None:
        ann = self.annealer
        ann.reporter.throw_if(
            ann.model is None, ErrorKind.NOT_CONFIGURED, "no problem loaded"
        )
        ann.reporter.throw_if(
            not ann.state.is_ready,
            ErrorKind.NOT_CONFIGURED,
            f"annealer not ready, missing: {', '.join(ann.state.missing())}",
        )

    def run(self) -> AnnealResult:
        """Anneal through every schedule step, then report.

        Configuration problems are raised before the first sweep.
        """
        ann = self.annealer
        self._check_ready()
        validate_schedule(self.schedule, ann.reporter)

        method = ann.model.method
        n_steps = len(self.schedule)
        log_every = max(n_steps // max(self.n_trajectory_points, 1), 1)

        energies = ann.replica_energies()
        best_r = int(np.argmin(method.sign * energies))
        best_energy = float(energies[best_r])
        best_x = ann.replica_bits(best_r)
        best_step = -1
        best_replica = best_r
        trajectory: list[TrajectoryPoint] = []

        logger.info(
            "Anneal start: %d steps, m=%d, algorithm=%s",
            n_steps, ann.get_preferences().n_trotters, ann.algorithm_name,
        )
        self.steps_done = 0
        for step, point in enumerate(self.schedule):
            accepted = ann.anneal_one_step(point.gamma, point.temperature)
            self.steps_done += 1

            energies = ann.replica_energies()
            r = int(np.argmin(method.sign * energies))
            if method.is_better(float(energies[r]), best_energy):
                best_energy = float(energies[r])
                best_x = ann.replica_bits(r)
                best_step = step
                best_replica = r

            if step % log_every == 0 or step == n_steps - 1:
                trajectory.append(
                    TrajectoryPoint(
                        step=step,
                        gamma=point.gamma,
                        temperature=point.temperature,
                        energy=float(energies[r]),
                        accepted_flips=accepted,
                    )
                )
                logger.debug(
                    "step %d/%d G=%.4g T=%.4g E=%.6g accepted=%d",
                    step + 1, n_steps, point.gamma, point.temperature,
                    energies[r], accepted,
                )

        logger.info("Anneal done: best E=%.6g at step %d", best_energy, best_step)
        final_q = ann.get_q()
        if isinstance(ann.model, BipartiteGraph):
            final_x = (x_from_q(final_q[0]), x_from_q(final_q[1]))
        else:
            final_x = x_from_q(final_q)
        return AnnealResult(
            final_x=final_x,
            final_q=final_q,
            final_energies=ann.replica_energies(),
            best_energy=best_energy,
            best_x=best_x,
            best_step=best_step,
            best_replica=best_replica,
            algorithm=ann.algorithm_name,
            n_sweeps=self.steps_done,
            method=method,
            trajectory=trajectory,
        )


def anneal(annealer: Annealer, schedule: AnnealSchedule) -> AnnealResult:
    """Run ``schedule`` on ``annealer`` and return the result."""
    return AnnealingDriver(annealer, schedule).run()

