"""Dwell-time distributions for disease progression.

A descriptor such as

    {'distribution': 'lognormal', 'median': 4.0, 'std': 4.0}

is turned once, at build time, into an immutable sampler whose `sample(rng)`
returns a non-negative integer number of days. All validation happens in
build_sampler(); sampling never raises.

Families:
  - lognormal(median, std): parameterized in days on the natural scale.
        μ = ln(median)
        σ² = ln((1 + √(1 + 4·std²/median²)) / 2)
    so that the distribution has exactly the given median and standard
    deviation.
  - gamma(mean, shape): Erlang-style stage duration, Gamma(k, mean/k).
  - fixed(days): constant dwell time; draws nothing from the random source.

Each family draws exactly one value per sample (fixed draws none), which keeps
the run's draw order independent of parameter values.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Union

import numpy as np

from tracesim.errors import ConfigurationError


def _to_days(value: float) -> int:
    return max(0, int(round(value)))


@dataclass(frozen=True)
class LogNormalDuration:
    """Log-normal dwell time with given median and standard deviation (days)."""
    median: float
    std: float

    @property
    def mu(self) -> float:
        return math.log(self.median)

    @property
    def sigma(self) -> float:
        ratio = (self.std / self.median) ** 2
        return math.sqrt(math.log((1.0 + math.sqrt(1.0 + 4.0 * ratio)) / 2.0))

    def sample(self, rng: np.random.Generator) -> int:
        return _to_days(rng.lognormal(self.mu, self.sigma))

    def describe(self) -> str:
        return f"logNormal(median={self.median:g}, std={self.std:g})"


@dataclass(frozen=True)
class GammaDuration:
    """Gamma(k, mean/k) dwell time; mean in days, integer-or-real shape k."""
    mean: float
    shape: float

    def sample(self, rng: np.random.Generator) -> int:
        return _to_days(rng.gamma(self.shape, self.mean / self.shape))

    def describe(self) -> str:
        return f"gamma(mean={self.mean:g}, shape={self.shape:g})"


@dataclass(frozen=True)
class FixedDuration:
    """Constant dwell time."""
    days: int

    def sample(self, rng: np.random.Generator) -> int:
        return self.days

    def describe(self) -> str:
        return f"fixed({self.days})"


DurationSampler = Union[LogNormalDuration, GammaDuration, FixedDuration]


# ═══════════════════════════════════════════════════════════════════════
# BUILDERS
# ═══════════════════════════════════════════════════════════════════════

def _positive(spec: Mapping[str, Any], key: str, family: str) -> float:
    if key not in spec:
        raise ConfigurationError(f"{family} distribution requires '{key}'")
    try:
        value = float(spec[key])
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"{family}.{key} must be a number, got {spec[key]!r}"
        ) from None
    if not value > 0.0 or math.isinf(value):
        raise ConfigurationError(f"{family}.{key} must be positive, got {spec[key]!r}")
    return value


def _build_lognormal(spec: Mapping[str, Any]) -> LogNormalDuration:
    return LogNormalDuration(
        median=_positive(spec, 'median', 'lognormal'),
        std=_positive(spec, 'std', 'lognormal'),
    )


def _build_gamma(spec: Mapping[str, Any]) -> GammaDuration:
    return GammaDuration(
        mean=_positive(spec, 'mean', 'gamma'),
        shape=_positive(spec, 'shape', 'gamma'),
    )


def _build_fixed(spec: Mapping[str, Any]) -> FixedDuration:
    days = _positive(spec, 'days', 'fixed')
    if days != int(days):
        raise ConfigurationError(f"fixed.days must be a whole number, got {spec['days']!r}")
    return FixedDuration(days=int(days))


FAMILIES: Dict[str, Callable[[Mapping[str, Any]], DurationSampler]] = {
    'lognormal': _build_lognormal,
    'gamma': _build_gamma,
    'fixed': _build_fixed,
}


def build_sampler(spec: Mapping[str, Any]) -> DurationSampler:
    """Build a dwell-time sampler from a declarative descriptor.

    Args:
        spec: Mapping with a 'distribution' family name plus that family's
            parameters. Other keys (e.g. 'to', 'weight') are ignored.

    Returns:
        Immutable sampler with `sample(rng) -> int` and `describe() -> str`.

    Raises:
        ConfigurationError: Unknown family, missing or non-positive parameter.
    """
    if isinstance(spec, (LogNormalDuration, GammaDuration, FixedDuration)):
        return spec
    if not isinstance(spec, Mapping):
        raise ConfigurationError(f"Distribution descriptor must be a mapping, got {spec!r}")
    family = str(spec.get('distribution', '')).lower().replace('_', '')
    if family not in FAMILIES:
        raise ConfigurationError(
            f"Unknown distribution family {spec.get('distribution')!r}; "
            f"expected one of {sorted(FAMILIES)}"
        )
    return FAMILIES[family](spec)


def log_normal_with_median_and_std(median: float, std: float) -> LogNormalDuration:
    """Validated shorthand for a log-normal dwell time."""
    return _build_lognormal({'median': median, 'std': std})
