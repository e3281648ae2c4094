"""Deterministic synthetic jet records for presets and tests."""

from __future__ import annotations

from typing import Dict, Mapping

import numpy as np
import pandas as pd

FLAVOR_FRACTIONS: Mapping[str, float] = {"light": 0.72, "charm": 0.1, "bottom": 0.15, "tau": 0.03}
TRUTH_LABELS: Mapping[str, int] = {"light": 0, "charm": 4, "bottom": 5, "tau": 15}

# per flavour: (ip3d mean, sv mass gamma shape, jf efrac beta a)
_FEATURE_SHAPES: Mapping[str, tuple[float, float, float]] = {
    "light": (-1.0, 1.0, 1.0),
    "charm": (0.5, 2.0, 2.0),
    "bottom": (1.5, 3.5, 3.0),
    "tau": (0.0, 1.5, 1.5),
}

INPUT_BRANCHES: Dict[str, str] = {
    "ip3d_llr": "float",
    "sv_mass": "float",
    "jf_efrac": "float",
    "log_pt": "double",
    "abs_eta": "double",
}


def make_jet_frame(n: int = 2000, seed: int = 0) -> pd.DataFrame:
    """Return ``n`` jets with kinematics, flavour flags and tagger-like features.

    Flavour flags ``light``/``charm``/``bottom`` are mutually exclusive; tau
    jets carry none of them and a truth label of 15. Roughly a tenth of the
    jets fall outside the default kinematic quality cut.
    """

    rng = np.random.default_rng(seed)
    names = list(FLAVOR_FRACTIONS)
    probs = np.asarray([FLAVOR_FRACTIONS[name] for name in names])
    flavor = rng.choice(len(names), size=n, p=probs / probs.sum())

    pt = 15.0 + rng.exponential(45.0, size=n)
    hard = flavor == names.index("bottom")
    pt[hard] += rng.exponential(20.0, size=int(hard.sum()))
    eta = rng.uniform(-2.8, 2.8, size=n)

    ip3d = np.empty(n)
    sv_mass = np.empty(n)
    efrac = np.empty(n)
    for idx, name in enumerate(names):
        mask = flavor == idx
        count = int(mask.sum())
        mean, shape, alpha = _FEATURE_SHAPES[name]
        ip3d[mask] = rng.normal(mean, 1.0, size=count)
        sv_mass[mask] = rng.gamma(shape, 0.5, size=count)
        efrac[mask] = rng.beta(alpha, 2.0, size=count)

    frame = pd.DataFrame(
        {
            "pt": pt,
            "eta": eta,
            "truth_label": np.asarray([TRUTH_LABELS[names[f]] for f in flavor], dtype=np.int32),
            "light": (flavor == names.index("light")).astype(np.int32),
            "charm": (flavor == names.index("charm")).astype(np.int32),
            "bottom": (flavor == names.index("bottom")).astype(np.int32),
            "ip3d_llr": ip3d.astype(np.float32),
            "sv_mass": sv_mass.astype(np.float32),
            "jf_efrac": efrac.astype(np.float32),
            "log_pt": np.log(pt / 20.0),
            "abs_eta": np.abs(eta),
        }
    )
    return frame


__all__ = ["FLAVOR_FRACTIONS", "INPUT_BRANCHES", "TRUTH_LABELS", "make_jet_frame"]
