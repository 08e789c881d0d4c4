from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

import numpy as np

logger = logging.getLogger(__name__)

Objective = Callable[[np.ndarray], float]


@dataclass(frozen=True)
class OptimizationResult:
    x: np.ndarray
    fun: float
    iterations: int
    success: bool
    message: str = ""


class Optimizer(Protocol):
    def minimize(
        self,
        objective: Objective,
        x0: np.ndarray,
        steps: Sequence[float],
        max_iterations: int,
        tolerance: float,
    ) -> OptimizationResult: ...


def initial_simplex(x0: np.ndarray, steps: Sequence[float]) -> np.ndarray:
    """(n+1, n) simplex: x0 followed by x0 + steps[i] * e_i."""
    x0 = np.asarray(x0, dtype=np.float64).reshape(-1)
    steps = np.asarray(steps, dtype=np.float64).reshape(-1)
    if steps.shape != x0.shape:
        raise ValueError(f"need one step per parameter ({x0.size}), got {steps.size}")
    return np.vstack([x0, x0 + np.diag(steps)])


def relative_spread(f_lo: float, f_hi: float) -> float:
    """2 |f_hi - f_lo| / (|f_hi| + |f_lo|); 0 when both are exactly zero."""
    denom = abs(f_hi) + abs(f_lo)
    if denom == 0.0:
        return 0.0
    return 2.0 * abs(f_hi - f_lo) / denom


class NelderMeadOptimizer:
    """
    Derivative-free downhill simplex (reflection / expansion / contraction / shrink).

    Converges when the relative spread of the objective over the simplex
    vertices drops below `tolerance`.
    `max_iterations` counts simplex updates; reaching it is a failure.
    """

    def __init__(
        self,
        reflection: float = 1.0,
        expansion: float = 2.0,
        contraction: float = 0.5,
        shrink: float = 0.5,
    ) -> None:
        self.reflection = reflection
        self.expansion = expansion
        self.contraction = contraction
        self.shrink = shrink

    def minimize(
        self,
        objective: Objective,
        x0: np.ndarray,
        steps: Sequence[float],
        max_iterations: int,
        tolerance: float,
    ) -> OptimizationResult:
        rho, chi, psi, sigma = self.reflection, self.expansion, self.contraction, self.shrink
        sim = initial_simplex(x0, steps)
        fsim = np.array([float(objective(v)) for v in sim], dtype=np.float64)
        nfev = sim.shape[0]

        iterations = 0
        while True:
            order = np.argsort(fsim, kind="stable")
            sim = sim[order]
            fsim = fsim[order]
            spread = relative_spread(float(fsim[0]), float(fsim[-1]))
            if spread < tolerance:
                success, message = True, f"relative spread {spread:.3g} below tolerance {tolerance:g}"
                break
            if iterations >= max_iterations:
                success, message = False, f"maximum number of iterations ({max_iterations}) reached, relative spread {spread:.3g}"
                break
            iterations += 1

            centroid = sim[:-1].mean(axis=0)
            worst = sim[-1]
            xr = centroid + rho * (centroid - worst)
            fr = float(objective(xr))
            nfev += 1

            if fr < fsim[0]:
                xe = centroid + rho * chi * (centroid - worst)
                fe = float(objective(xe))
                nfev += 1
                if fe < fr:
                    sim[-1], fsim[-1] = xe, fe
                else:
                    sim[-1], fsim[-1] = xr, fr
                continue
            if fr < fsim[-2]:
                sim[-1], fsim[-1] = xr, fr
                continue

            if fr < fsim[-1]:
                xc = centroid + psi * rho * (centroid - worst)
                fc = float(objective(xc))
                nfev += 1
                accept = fc <= fr
            else:
                xc = centroid - psi * (centroid - worst)
                fc = float(objective(xc))
                nfev += 1
                accept = fc < fsim[-1]
            if accept:
                sim[-1], fsim[-1] = xc, fc
                continue

            sim[1:] = sim[0] + sigma * (sim[1:] - sim[0])
            for j in range(1, sim.shape[0]):
                fsim[j] = float(objective(sim[j]))
            nfev += sim.shape[0] - 1

        logger.debug("Nelder-Mead: success=%s nit=%d nfev=%d fun=%g (%s)", success, iterations, nfev, fsim[0], message)
        return OptimizationResult(
            x=sim[0].copy(),
            fun=float(fsim[0]),
            iterations=iterations,
            success=success,
            message=message,
        )
