# mini_bridge/losses.py
"""
TIME-DEPENDENT PRESTRESS LOSSES
===============================

Four components, computed separately and summed:

    elastic shortening   instantaneous, at transfer
    creep                sustained concrete stress at the strand x creep coefficient
    shrinkage            humidity, volume/surface ratio and elapsed time
    relaxation           initial stress ratio and elapsed time, reduced by
                         concurrent creep and shrinkage

Two interchangeable models implement the same ``LossModel`` interface:

    ApproximateLossModel   AASHTO LRFD 5.9.3.3 long-term estimate, scaled in
                           time by the concrete development factor
    RefinedLossModel       time-stepped AASHTO 5.4.2.3 creep/shrinkage with
                           the sustained stress updated after every step

Units: ksi, in², in⁴, kip-in, days. Ages are measured from strand release.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np

from .errors import LimitExceedance

logger = logging.getLogger(__name__)

# Loss totals above this fraction of the jacking stress are reported.
LOSS_WARNING_RATIO = 0.35


class LossMethod(str, Enum):
    APPROXIMATE = 'approximate'
    REFINED = 'refined'


@dataclass(frozen=True)
class Environment:
    """Ambient relative humidity (%) and member volume-to-surface ratio (in)."""
    relative_humidity: float = 70.0
    volume_to_surface: float = 3.5

    def __post_init__(self):
        if not 0.0 <= self.relative_humidity <= 100.0:
            raise ValueError(f"Relative humidity must be in [0, 100], got {self.relative_humidity}")
        if self.volume_to_surface <= 0.0:
            raise ValueError("Volume-to-surface ratio must be positive")


@dataclass(frozen=True)
class PrestressContext:
    """
    Everything the loss models need at one station of the girder.

    e is the strand eccentricity on the bare girder. superimposed lists
    (age, delta_fcd) pairs: the change in concrete stress at the strand
    centroid caused by loads added after transfer (deck, barriers), with
    compression positive, so those entries are normally negative.
    """
    Aps: float
    fpj: float
    Ag: float
    Ig: float
    e: float
    Ep: float = 28500.0
    Eci: float = 4200.0
    fci: float = 6.0
    fpu: float = 270.0
    fpy: float = 243.0
    Mg: float = 0.0
    transfer_age: float = 1.0
    superimposed: Tuple[Tuple[float, float], ...] = ()
    elastic_shortening: Optional[float] = None

    @property
    def es_loss(self) -> float:
        if self.elastic_shortening is not None:
            return self.elastic_shortening
        return elastic_shortening(self.Aps, self.fpj, self.Ag, self.Ig, self.e,
                                  self.Mg, self.Ep, self.Eci)

    @property
    def fpt(self) -> float:
        """Strand stress immediately after transfer."""
        return self.fpj - self.es_loss

    @property
    def fcgp(self) -> float:
        """Concrete stress at the strand centroid right after transfer (compression +)."""
        P = self.Aps * self.fpt
        return P / self.Ag + P * self.e ** 2 / self.Ig - self.Mg * self.e / self.Ig

    def with_superimposed(self, age: float, delta_fcd: float) -> 'PrestressContext':
        return replace(self, superimposed=self.superimposed + ((age, delta_fcd),))


@dataclass(frozen=True)
class LossBreakdown:
    elastic_shortening: float = 0.0
    creep: float = 0.0
    shrinkage: float = 0.0
    relaxation: float = 0.0

    @property
    def time_dependent(self) -> float:
        return self.creep + self.shrinkage + self.relaxation

    @property
    def total(self) -> float:
        return self.elastic_shortening + self.time_dependent

    def effective_stress(self, fpj: float) -> float:
        return fpj - self.total

    def at_least(self, other: 'LossBreakdown') -> 'LossBreakdown':
        """Component-wise maximum."""
        return LossBreakdown(
            elastic_shortening=max(self.elastic_shortening, other.elastic_shortening),
            creep=max(self.creep, other.creep),
            shrinkage=max(self.shrinkage, other.shrinkage),
            relaxation=max(self.relaxation, other.relaxation),
        )

    def as_dict(self) -> dict:
        return {
            'elastic_shortening': self.elastic_shortening,
            'creep': self.creep,
            'shrinkage': self.shrinkage,
            'relaxation': self.relaxation,
            'total': self.total,
        }


class LossModel(Protocol):
    def losses_at(self, age_days: float, context: PrestressContext,
                  environment: Environment) -> LossBreakdown:
        ...


# =============================================================================
# Code factors
# =============================================================================

def elastic_shortening(Aps: float, fpj: float, Ag: float, Ig: float, e: float,
                       Mg: float, Ep: float, Eci: float) -> float:
    """
    Elastic shortening loss at transfer (AASHTO C5.9.5.2.3a closed form).

        dES = n (Pj a - Mg e / I) / (1 + n Aps a),   a = 1/A + e²/I,  n = Ep/Eci
    """
    n = Ep / Eci
    a = 1.0 / Ag + e ** 2 / Ig
    Pj = Aps * fpj
    return max(0.0, n * (Pj * a - Mg * e / Ig) / (1.0 + n * Aps * a))


def time_development_factor(t: float, fci: float) -> float:
    """AASHTO 5.4.2.3.2 k_td; t in days of loading."""
    if t <= 0:
        return 0.0
    return t / (12.0 * (100.0 - 4.0 * fci) / (fci + 20.0) + t)


def humidity_factor_approx(H: float) -> float:
    return 1.7 - 0.01 * H


def strength_factor_approx(fci: float) -> float:
    return 5.0 / (1.0 + fci)


def creep_coefficient(t: float, ti: float, fci: float, env: Environment) -> float:
    """AASHTO 5.4.2.3.2: psi(t, ti) = 1.9 ks khc kf ktd ti^-0.118."""
    ks = max(1.0, 1.45 - 0.13 * env.volume_to_surface)
    khc = 1.56 - 0.008 * env.relative_humidity
    kf = 5.0 / (1.0 + fci)
    return 1.9 * ks * khc * kf * time_development_factor(t, fci) * ti ** -0.118


def shrinkage_strain(t: float, fci: float, env: Environment) -> float:
    """AASHTO 5.4.2.3.3: eps_sh = ks khs kf ktd 0.48e-3."""
    ks = max(1.0, 1.45 - 0.13 * env.volume_to_surface)
    khs = 2.0 - 0.014 * env.relative_humidity
    kf = 5.0 / (1.0 + fci)
    return ks * khs * kf * time_development_factor(t, fci) * 0.48e-3


def intrinsic_relaxation(fpt: float, fpy: float, t: float) -> float:
    """Low-relaxation strand: fpt log10(24 t)/40 (fpt/fpy - 0.55), t in days."""
    if t <= 1.0 / 24.0 or fpt / fpy <= 0.55:
        return 0.0
    return fpt * math.log10(24.0 * t) / 40.0 * (fpt / fpy - 0.55)


# =============================================================================
# Models
# =============================================================================

@dataclass(frozen=True)
class ApproximateLossModel:
    """
    AASHTO 5.9.3.3 approximate estimate of long-term losses.

        creep      = 10 fpi Aps/Ag  gh gst
        shrinkage  = 12 gh gst
        relaxation = 0.3 (20 - 0.4 dES - 0.2 (dSR + dCR))

    gh = 1.7 - 0.01 H, gst = 5 / (1 + f'ci). The long-term values are
    reached at final_age; earlier ages are scaled by k_td (creep,
    shrinkage) and by log-time (relaxation).
    """
    final_age: float = 20000.0

    def losses_at(self, age_days: float, context: PrestressContext,
                  environment: Environment) -> LossBreakdown:
        es = context.es_loss
        if age_days <= 0:
            return LossBreakdown(elastic_shortening=es)

        gh = humidity_factor_approx(environment.relative_humidity)
        gst = strength_factor_approx(context.fci)
        creep_lt = 10.0 * context.fpj * context.Aps / context.Ag * gh * gst
        shrink_lt = 12.0 * gh * gst
        relax_lt = max(0.0, 0.3 * (20.0 - 0.4 * es - 0.2 * (shrink_lt + creep_lt)))

        t = min(age_days, self.final_age)
        develop = time_development_factor(t, context.fci) / time_development_factor(self.final_age, context.fci)
        relax_ratio = max(0.0, math.log10(24.0 * t)) / math.log10(24.0 * self.final_age)

        return LossBreakdown(
            elastic_shortening=es,
            creep=creep_lt * develop,
            shrinkage=shrink_lt * develop,
            relaxation=relax_lt * relax_ratio,
        )


@dataclass(frozen=True)
class RefinedLossModel:
    """
    Time-stepped refined losses.

    Steps are log-spaced on a fixed grid from 0.1 day to final_age, so two
    queries share every step up to the earlier age. Each step:

        creep      += (Ep/Eci) f_c(t_prev) [psi(t) - psi(t_prev)] K_id
        shrinkage  += Ep [eps_sh(t) - eps_sh(t_prev)] K_id
        relaxation  = intrinsic(t) (1 - 3 (dSR + dCR)/fpt)

    f_c is the sustained concrete stress at the strand: the transfer stress,
    reduced by the strand force already lost and shifted by any superimposed
    stress changes applied at or before t_prev. Increments never go
    negative.
    """
    steps_per_decade: int = 10
    final_age: float = 20000.0

    def _grid(self, age: float) -> np.ndarray:
        decades = math.log10(self.final_age / 0.1)
        n = int(math.ceil(decades * self.steps_per_decade)) + 1
        grid = np.geomspace(0.1, self.final_age, n)
        grid = grid[grid < age]
        return np.concatenate(([0.0], grid, [age]))

    def losses_at(self, age_days: float, context: PrestressContext,
                  environment: Environment) -> LossBreakdown:
        es = context.es_loss
        if age_days <= 0:
            return LossBreakdown(elastic_shortening=es)

        ti = context.transfer_age
        fci = context.fci
        n_i = context.Ep / context.Eci
        fpt = context.fpt
        section_factor = 1.0 + context.Ag * context.e ** 2 / context.Ig
        psi_final = creep_coefficient(self.final_age, ti, fci, environment)
        K_id = 1.0 / (1.0 + n_i * context.Aps / context.Ag * section_factor * (1.0 + 0.7 * psi_final))
        # concrete stress at the strand per unit strand stress lost
        loss_to_stress = context.Aps * (1.0 / context.Ag + context.e ** 2 / context.Ig)

        creep = shrink = relax = 0.0
        grid = self._grid(age_days)
        for t_prev, t in zip(grid[:-1], grid[1:]):
            fc = context.fcgp - (creep + shrink + relax) * loss_to_stress
            fc += sum(dfcd for tau, dfcd in context.superimposed if tau <= t_prev)
            fc = max(fc, 0.0)

            d_psi = creep_coefficient(t, ti, fci, environment) - creep_coefficient(t_prev, ti, fci, environment)
            creep += max(0.0, n_i * fc * d_psi * K_id)

            d_eps = shrinkage_strain(t, fci, environment) - shrinkage_strain(t_prev, fci, environment)
            shrink += max(0.0, context.Ep * d_eps * K_id)

            reduction = max(0.0, 1.0 - 3.0 * (shrink + creep) / fpt)
            relax = max(relax, intrinsic_relaxation(fpt, context.fpy, t) * reduction)

        return LossBreakdown(elastic_shortening=es, creep=creep, shrinkage=shrink, relaxation=relax)


def loss_model(method) -> LossModel:
    method = LossMethod(method)
    if method is LossMethod.REFINED:
        return RefinedLossModel()
    return ApproximateLossModel()


# =============================================================================
# History
# =============================================================================

@dataclass
class LossHistory:
    """
    Losses recorded stage by stage for one station.

    record() never lets a component drop below its previously recorded
    value, so the history is monotone in time whatever model produced it.
    """
    fpj: float
    entries: List[Tuple[str, float, LossBreakdown]] = field(default_factory=list)

    def record(self, stage: str, age_days: float, losses: LossBreakdown) -> LossBreakdown:
        if self.entries:
            _, last_age, last = self.entries[-1]
            if age_days < last_age:
                raise ValueError(f"Stage '{stage}' age {age_days} precedes previous age {last_age}")
            losses = losses.at_least(last)
        self.entries.append((stage, age_days, losses))
        return losses

    @property
    def latest(self) -> Optional[LossBreakdown]:
        return self.entries[-1][2] if self.entries else None

    def effective_stress(self) -> float:
        latest = self.latest
        return self.fpj if latest is None else latest.effective_stress(self.fpj)

    def stages(self) -> Sequence[str]:
        return [name for name, _, _ in self.entries]


def loss_warnings(losses: LossBreakdown, fpj: float, stage: str = None,
                  section: float = None) -> List[LimitExceedance]:
    limit = LOSS_WARNING_RATIO * fpj
    if losses.total <= limit:
        return []
    logger.warning("Prestress loss %.1f ksi exceeds %.1f ksi at stage %s", losses.total, limit, stage)
    return [LimitExceedance(
        kind='loss',
        message=f"Total prestress loss {losses.total:.1f} ksi exceeds {LOSS_WARNING_RATIO:.0%} of jacking stress",
        value=losses.total,
        limit=limit,
        stage=stage,
        section=section,
    )]
