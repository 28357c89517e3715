# src/hrtengine/models/three_compartment.py
from types import MappingProxyType
from typing import Mapping, Optional

from ..types import EsterModel, PKParams

# [d, k1, k2, k3] per model, rates in 1/day.
# Fitted three-compartment parameters from the estrannaise model data.
PK_PARAMETERS: Mapping[EsterModel, PKParams] = MappingProxyType({
    EsterModel.EV_IM: PKParams(478.0, 0.236, 4.85, 1.24),
    EsterModel.EEN_IM: PKParams(191.4, 0.119, 0.601, 0.402),
    EsterModel.EC_IM: PKParams(246.0, 0.0825, 3.57, 0.669),
    EsterModel.EB_IM: PKParams(1893.1, 0.67, 61.5, 4.34),
    EsterModel.EUN_IM: PKParams(471.5, 0.01729, 6.528, 2.285),
    EsterModel.EUN_CASUBQ: PKParams(16.15, 0.046, 0.022, 0.101),
    EsterModel.PATCH_TW: PKParams(16.792, 0.283, 5.592, 4.3),
    EsterModel.PATCH_OW: PKParams(59.481, 0.107, 7.842, 5.193),
})


def params_for(model) -> Optional[PKParams]:
    """PK parameters for a model (enum member or key string), or None if unknown."""
    if model is None:
        return None
    try:
        return PK_PARAMETERS.get(EsterModel(model))
    except ValueError:
        return None


def three_compartment_rhs(t, y, k1, k2, k3):
    """
    Linear 3-compartment chain: depot -> secondary -> central -> eliminated.
    Three states:
      y[0] = amount in the injection depot
      y[1] = amount in the secondary compartment
      y[2] = amount in the central (serum) compartment

    Parameters:
      t      : current time (days), unused; the system is autonomous
      y      : current state vector [A_depot, A_secondary, A_central]
      k1     : depot release rate (1/day)
      k2     : secondary -> central transfer rate (1/day)
      k3     : central elimination rate (1/day)

    With y(0) = [dose * d, 0, 0] the central state is the closed-form
    single-dose concentration.
    """
    A_depot, A_sec, A_c = y

    dA_depot_dt = -k1 * A_depot
    dA_sec_dt = k1 * A_depot - k2 * A_sec
    dA_c_dt = k2 * A_sec - k3 * A_c

    return [dA_depot_dt, dA_sec_dt, dA_c_dt]
