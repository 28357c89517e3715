# src/hrtengine/solvers.py
"""Numerical ODE reference for the closed-form curves; used to validate `curves`."""
import numpy as np
from scipy.integrate import solve_ivp

from .models.three_compartment import three_compartment_rhs
from .types import PKParams


def simulate_single_dose(dose: float, params: PKParams, t_end_d: float, dt_d: float = 0.25, *,
                         secondary: float = 0.0, central: float = 0.0,
                         rtol: float = 1e-9, atol: float = 1e-12):
    """
    Numerically integrate the 3-compartment chain for one dose at t=0.

    This is the reference the closed forms in `curves` are checked against;
    it makes no assumption about which rate constants coincide.

    Returns:
      t : array of time points (days), starting at 0
      C : array of central-compartment levels (same scale as the closed form)
    """
    d, k1, k2, k3 = (float(p) for p in params)
    t_grid = np.arange(0.0, t_end_d + dt_d, dt_d)
    y0 = [float(dose) * d, float(secondary), float(central)]

    def rhs(t, y):
        return three_compartment_rhs(t, y, k1, k2, k3)

    # Fast esters (EB: k2 = 61.5/day) make the system stiff.
    sol = solve_ivp(rhs, t_span=(0.0, float(t_grid[-1])), y0=y0, method="LSODA",
                    t_eval=t_grid, rtol=rtol, atol=atol)
    if not sol.success:
        raise RuntimeError(f"ODE integration failed: {sol.message}")

    C = np.maximum(sol.y[2], 0.0)
    return sol.t, C
