"""Initial pore-model scaling.

For a strand with observed event-mean statistics ``(mu, sigma)`` and a model with
level statistics ``(M_mean, M_stdev)``, the initial guess maps the model onto the
observed signal:

    scale = sigma / M_stdev
    shift = mu - scale * M_mean

When both strands are scaled together, the two per-strand guesses are averaged for
every (template model, complement model) pair.
"""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Tuple

from .models import (
    COMPLEMENT,
    TEMPLATE,
    CalibrationCandidate,
    ModelKey,
    ModelParameters,
    TransitionParameters,
)
from .pore_model import PoreModel

logger = logging.getLogger(__name__)

Stats = Tuple[float, float]


def strand_scaling(stats: Stats, model: PoreModel) -> ModelParameters:
    mean, stdev = stats
    scale = stdev / model.stdev
    return ModelParameters(scale=scale, shift=mean - scale * model.mean)


def joint_scaling(stats0: Stats, stats1: Stats, model0: PoreModel, model1: PoreModel) -> ModelParameters:
    scale = (stats0[1] / model0.stdev + stats1[1] / model1.stdev) / 2
    shift = ((stats0[0] - scale * model0.mean) + (stats1[0] - scale * model1.mean)) / 2
    return ModelParameters(scale=scale, shift=shift)


def estimate_strand_candidates(
    st: int,
    stats: Stats,
    models: Mapping[str, PoreModel],
    *,
    read_id: str = "",
) -> Dict[ModelKey, CalibrationCandidate]:
    """One candidate per model usable on strand ``st``, keyed with the other slot empty."""
    out: Dict[ModelKey, CalibrationCandidate] = {}
    for name, model in models.items():
        if not model.fits_strand(st):
            continue
        key: ModelKey = (name, "") if st == TEMPLATE else ("", name)
        params = strand_scaling(stats, model)
        transitions = [None, None]
        transitions[st] = TransitionParameters()
        out[key] = CalibrationCandidate(key=key, params=params, transitions=tuple(transitions))
        logger.debug(
            "initial_scaling read [%s] strand [%d] model [%s] scale=%g shift=%g",
            read_id,
            st,
            name,
            params.scale,
            params.shift,
        )
    return out


def estimate_joint_candidates(
    stats0: Stats,
    stats1: Stats,
    models: Mapping[str, PoreModel],
    *,
    read_id: str = "",
) -> Dict[ModelKey, CalibrationCandidate]:
    """One candidate per (template model, complement model) pair, sharing one scaling."""
    out: Dict[ModelKey, CalibrationCandidate] = {}
    for name0, model0 in models.items():
        if not model0.fits_strand(TEMPLATE):
            continue
        for name1, model1 in models.items():
            if not model1.fits_strand(COMPLEMENT):
                continue
            key: ModelKey = (name0, name1)
            params = joint_scaling(stats0, stats1, model0, model1)
            out[key] = CalibrationCandidate(
                key=key,
                params=params,
                transitions=(TransitionParameters(), TransitionParameters()),
            )
            logger.debug(
                "initial_scaling read [%s] strand [2] model [%s+%s] scale=%g shift=%g",
                read_id,
                name0,
                name1,
                params.scale,
                params.shift,
            )
    return out
