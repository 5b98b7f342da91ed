"""Configuration system for tracesim.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Tracing values may vary over the run. Every tracing field except
`activation_day` accepts either a scalar or a date-indexed schedule:

    tracing:
      probability: 0.5
      capacity:
        2020-03-01: 0
        2020-03-15: 200
        2020-05-01: null      # unbounded from here on

A schedule resolves, for a given date, to the entry with the most recent date
at or before it, else to the field's default (find_valid_entry).
"""

from __future__ import annotations

import copy
import dataclasses
import warnings
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import yaml

from tracesim.errors import ConfigurationError
from tracesim.transitions import build_table
from tracesim.types import CapacityType, DiseaseStatus, TracingStrategy
from tracesim.utils import as_date


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Run-level settings."""
    start_date: str = '2020-02-18'   # Calendar date of simulated day 1
    sample_size: float = 1.0         # Population sample fraction; scales absolute capacities
    seed: int = 4711
    initial_infections: int = 10     # Seed infections drawn at day 1 by the driver
    log_level: str = 'INFO'


@dataclass
class ProgressionSection:
    """Disease progression parameters.

    transitions: None → built-in default table (transitions.DEFAULT_TRANSITIONS).
    Branch probabilities left at None follow the table's edge weights; a set
    probability replaces the weights of that state's edges.
    """
    transitions: Optional[Dict[str, Any]] = None
    symptomatic_probability: Optional[float] = None     # contagious → showing_symptoms
    seriously_sick_probability: Optional[float] = None  # showing_symptoms → seriously_sick
    critical_probability: Optional[float] = None        # seriously_sick → critical
    quarantine_release_days: int = 14                   # Healthy agents released after MORE than this


@dataclass
class TracingSection:
    """Contact tracing parameters (scalars or date-indexed schedules).

    activation_day: first simulated day on which traced persons are
    quarantined. None = tracing never active.
    capacity: daily tracing actions before sample-size scaling; None = unbounded.
    day_distance: lookback window (days) defining traceable contacts.
    """
    activation_day: Optional[int] = None
    capacity: Any = None
    probability: Any = 1.0
    delay: Any = 0
    day_distance: Any = 4
    quarantine_household: Any = False
    capacity_type: Any = CapacityType.PER_PERSON.value
    strategy: Any = TracingStrategy.CONTACT.value
    location_threshold: Any = 4


@dataclass
class SimulationConfig:
    """Complete configuration. Sections map 1:1 to YAML top-level keys."""
    simulation: SimulationSection = field(default_factory=SimulationSection)
    progression: ProgressionSection = field(default_factory=ProgressionSection)
    tracing: TracingSection = field(default_factory=TracingSection)


# Defaults used when a schedule has no entry at or before the date
TRACING_DEFAULTS: Dict[str, Any] = {
    f.name: f.default for f in dataclasses.fields(TracingSection)
    if f.name != 'activation_day'
}


# ═══════════════════════════════════════════════════════════════════════
# DATE-INDEXED SCHEDULES
# ═══════════════════════════════════════════════════════════════════════

Schedule = Union[Any, Dict[Union[str, date], Any]]


def schedule_entries(schedule: Dict[Union[str, date], Any]) -> List[Tuple[date, Any]]:
    """Schedule mapping as a date-sorted list of (date, value)."""
    return sorted(((as_date(k), v) for k, v in schedule.items()), key=lambda kv: kv[0])


def find_valid_entry(schedule: Schedule, default: Any, when: Union[str, date]) -> Any:
    """Resolve a scalar-or-schedule value for a date.

    Args:
        schedule: A scalar (returned as is) or {date: value} mapping.
        default: Returned when no entry is dated at or before `when`.
        when: Date to resolve for.

    Returns:
        The value of the most recent entry not after `when`, else `default`.
    """
    if not isinstance(schedule, dict):
        return schedule
    when = as_date(when)
    result = default
    for d, value in schedule_entries(schedule):
        if d > when:
            break
        result = value
    return result


def _schedule_values(schedule: Schedule) -> List[Any]:
    if isinstance(schedule, dict):
        return [v for _, v in schedule_entries(schedule)]
    return [schedule]


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Args:
        base: Base dictionary (modified in place).
        override: Override dictionary.

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    section_map = {
        'simulation': SimulationSection,
        'progression': ProgressionSection,
        'tracing': TracingSection,
    }
    sections = {}
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    if isinstance(sections['simulation'].start_date, date):
        sections['simulation'].start_date = sections['simulation'].start_date.isoformat()
    return SimulationConfig(**sections)


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_schedule(
    name: str,
    schedule: Schedule,
    check: Callable[[Any], bool],
    expected: str,
) -> None:
    if isinstance(schedule, dict):
        if not schedule:
            raise ConfigurationError(f"tracing.{name} schedule must not be empty")
        for key in schedule:
            try:
                as_date(key)
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"tracing.{name}: schedule key {key!r} is not an ISO date"
                ) from None
    for value in _schedule_values(schedule):
        if not check(value):
            raise ConfigurationError(f"tracing.{name} must be {expected}, got {value!r}")


def _valid_enum(enum_cls) -> Callable[[Any], bool]:
    values = {m.value for m in enum_cls}
    return lambda v: isinstance(v, enum_cls) or v in values


# Branch probability setting → state whose edge weights it replaces
BRANCH_PROBABILITIES = {
    'symptomatic_probability': DiseaseStatus.CONTAGIOUS,
    'seriously_sick_probability': DiseaseStatus.SHOWING_SYMPTOMS,
    'critical_probability': DiseaseStatus.SERIOUSLY_SICK,
}


def _warn_overridden_weights(prog: ProgressionSection) -> None:
    """Warn when a set branch probability hides explicitly weighted edges."""
    weighted = set()
    for raw_from, raw_edges in prog.transitions.items():
        edges = [raw_edges] if isinstance(raw_edges, dict) else raw_edges
        if any('weight' in e for e in edges):
            weighted.add(DiseaseStatus.parse(raw_from))
    for name, state in BRANCH_PROBABILITIES.items():
        if getattr(prog, name) is not None and state in weighted:
            warnings.warn(
                f"progression.{name} overrides the weights configured on "
                f"transitions.{state.name.lower()}",
                UserWarning,
                stacklevel=3,
            )


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ConfigurationError on failure.

    Checks:
      - Run settings (start date, sample size, seed, seeding)
      - Progression probabilities and the transition table (built once here)
      - Every tracing schedule entry has a valid date and value
    """
    sim = config.simulation
    try:
        as_date(sim.start_date)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"simulation.start_date must be an ISO date, got {sim.start_date!r}"
        ) from None
    if not sim.sample_size > 0:
        raise ConfigurationError(f"simulation.sample_size must be positive, got {sim.sample_size}")
    if sim.seed < 0:
        raise ConfigurationError("simulation.seed must be non-negative")
    if sim.initial_infections < 0:
        raise ConfigurationError("simulation.initial_infections must be non-negative")

    prog = config.progression
    for name in BRANCH_PROBABILITIES:
        p = getattr(prog, name)
        if p is None:
            continue
        if not 0.0 <= p <= 1.0:
            raise ConfigurationError(f"progression.{name} must be in [0, 1], got {p}")
    if prog.quarantine_release_days < 0:
        raise ConfigurationError("progression.quarantine_release_days must be non-negative")
    if prog.transitions is not None:
        build_table(prog.transitions)
        _warn_overridden_weights(prog)

    tr = config.tracing
    if tr.activation_day is not None and not _is_int(tr.activation_day):
        raise ConfigurationError(
            f"tracing.activation_day must be an integer or null, got {tr.activation_day!r}"
        )
    _check_schedule('capacity', tr.capacity,
                    lambda v: v is None or (_is_int(v) and v >= 0),
                    "a non-negative integer or null")
    _check_schedule('probability', tr.probability,
                    lambda v: isinstance(v, (int, float)) and not isinstance(v, bool)
                    and 0.0 <= v <= 1.0,
                    "a number in [0, 1]")
    _check_schedule('delay', tr.delay, lambda v: _is_int(v) and v >= 0,
                    "a non-negative integer")
    _check_schedule('day_distance', tr.day_distance, lambda v: _is_int(v) and v >= 0,
                    "a non-negative integer")
    _check_schedule('quarantine_household', tr.quarantine_household,
                    lambda v: isinstance(v, bool), "a boolean")
    _check_schedule('capacity_type', tr.capacity_type, _valid_enum(CapacityType),
                    f"one of {[m.value for m in CapacityType]}")
    _check_schedule('strategy', tr.strategy, _valid_enum(TracingStrategy),
                    f"one of {[m.value for m in TracingStrategy]}")
    _check_schedule('location_threshold', tr.location_threshold,
                    lambda v: _is_int(v) and v >= 1, "a positive integer")

    if tr.activation_day is None:
        configured = [k for k, default in TRACING_DEFAULTS.items() if getattr(tr, k) != default]
        if configured:
            warnings.warn(
                f"tracing.{', tracing.'.join(configured)} configured but "
                f"tracing.activation_day is unset; nobody will be quarantined by tracing",
                UserWarning,
                stacklevel=2,
            )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        sweep_overrides: Optional dict of parameter sweep overrides.

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ConfigurationError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, copy.deepcopy(sweep_overrides))

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
