"""Transition table: dwell-time samplers for every (from, to) progression edge.

A transition specification is plain data, typically the `progression.transitions`
section of the YAML config:

    contagious:
      - {to: showing_symptoms, weight: 0.8, distribution: lognormal, median: 2, std: 2}
      - {to: recovered,        weight: 0.2, distribution: lognormal, median: 4, std: 4}
    critical:
      to: seriously_sick_after_critical
      distribution: lognormal
      median: 21
      std: 21

build_table() validates it once and returns an immutable TransitionTable,
a dense (n_states × n_states) lookup. Weights are stored on the edges but
the weighted choice itself is made by the progression engine.

Validation (all raise ConfigurationError):
  - unknown state names, unknown distribution family, non-positive parameters
  - edges out of SUSCEPTIBLE or RECOVERED, self-loops, duplicate targets
  - non-positive weights
  - selection not total: a non-terminal state reachable from
    INFECTED_BUT_NOT_CONTAGIOUS without outgoing edges
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from tracesim.distributions import DurationSampler, build_sampler
from tracesim.errors import ConfigurationError, MissingTransition
from tracesim.types import DiseaseStatus


N_STATES = len(DiseaseStatus)

# First state of every infection; reachability is checked from here
ENTRY_STATE = DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS
TERMINAL_STATE = DiseaseStatus.RECOVERED


# ═══════════════════════════════════════════════════════════════════════
# DEFAULT PROGRESSION
# ═══════════════════════════════════════════════════════════════════════

def _ln(to: str, median: float, std: float, weight: Optional[float] = None) -> Dict[str, Any]:
    edge = {'to': to, 'distribution': 'lognormal', 'median': median, 'std': std}
    if weight is not None:
        edge['weight'] = weight
    return edge


# Medians / standard deviations in days. Weights are the branch
# probabilities unless progression.*_probability is configured.
DEFAULT_TRANSITIONS: Dict[str, List[Dict[str, Any]]] = {
    # Incubation: median 5–6 days to symptoms, infectious ~2 days before
    'infected_but_not_contagious': [_ln('contagious', 4.0, 4.0)],
    'contagious': [
        _ln('showing_symptoms', 2.0, 2.0, weight=0.8),
        _ln('recovered', 4.0, 4.0, weight=0.2),
    ],
    # Symptom onset → hospitalisation: median 4 days
    'showing_symptoms': [
        _ln('seriously_sick', 4.0, 4.0, weight=0.05625),
        _ln('recovered', 8.0, 8.0, weight=0.94375),
    ],
    # Hospitalisation → ICU: median 1 day
    'seriously_sick': [
        _ln('critical', 1.0, 1.0, weight=0.25),
        _ln('recovered', 14.0, 14.0, weight=0.75),
    ],
    # Severe courses last 3–6 weeks
    'critical': [_ln('seriously_sick_after_critical', 21.0, 21.0)],
    'seriously_sick_after_critical': [_ln('recovered', 7.0, 7.0)],
}


# ═══════════════════════════════════════════════════════════════════════
# TABLE
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Edge:
    """One outgoing progression edge."""
    to: DiseaseStatus
    sampler: DurationSampler
    weight: float = 1.0


class TransitionTable:
    """Immutable dense lookup of progression edges.

    Do not construct directly; use build_table() or default_table().
    """

    __slots__ = ('_matrix', '_edges')

    def __init__(self, edges: Mapping[DiseaseStatus, Sequence[Edge]]):
        matrix: List[Optional[DurationSampler]] = [None] * (N_STATES * N_STATES)
        for from_state, out in edges.items():
            for edge in out:
                matrix[from_state * N_STATES + edge.to] = edge.sampler
        self._matrix: Tuple[Optional[DurationSampler], ...] = tuple(matrix)
        self._edges: Dict[DiseaseStatus, Tuple[Edge, ...]] = {
            s: tuple(edges.get(s, ())) for s in DiseaseStatus
        }

    def lookup(self, from_state: DiseaseStatus, to_state: DiseaseStatus) -> DurationSampler:
        """Sampler governing the edge from → to.

        Raises:
            MissingTransition: If the edge is not in the table.
        """
        sampler = self._matrix[from_state * N_STATES + to_state]
        if sampler is None:
            raise MissingTransition(from_state, to_state)
        return sampler

    def has_edge(self, from_state: DiseaseStatus, to_state: DiseaseStatus) -> bool:
        return self._matrix[from_state * N_STATES + to_state] is not None

    def edges(self, from_state: DiseaseStatus) -> Tuple[Edge, ...]:
        """Outgoing edges of `from_state` in specification order."""
        return self._edges[from_state]

    def is_terminal(self, state: DiseaseStatus) -> bool:
        return not self._edges[state]

    def describe(self) -> str:
        return "\n".join(
            f"{s.name} -> {e.to.name}: {e.sampler.describe()} (weight {e.weight:g})"
            for s, e in iter_edges(self)
        )

    def __repr__(self) -> str:
        n_edges = sum(len(e) for e in self._edges.values())
        return f"TransitionTable({n_edges} edges)"


# ═══════════════════════════════════════════════════════════════════════
# BUILDING
# ═══════════════════════════════════════════════════════════════════════

def _parse_state(name: Any, where: str) -> DiseaseStatus:
    try:
        return DiseaseStatus.parse(name)
    except ValueError:
        raise ConfigurationError(f"{where}: unknown disease state {name!r}") from None


def _parse_weight(raw: Any, where: str) -> float:
    try:
        weight = float(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{where}: weight must be a number, got {raw!r}") from None
    if not weight > 0.0 or math.isinf(weight):
        raise ConfigurationError(f"{where}: weight must be positive, got {raw!r}")
    return weight


def _parse_edges(from_state: DiseaseStatus, raw: Any) -> List[Edge]:
    where = f"transitions.{from_state.name.lower()}"
    if isinstance(raw, Mapping):
        raw = [raw]
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ConfigurationError(f"{where}: expected one or more edges, got {raw!r}")

    edges: List[Edge] = []
    seen = set()
    for i, entry in enumerate(raw):
        here = f"{where}[{i}]"
        if not isinstance(entry, Mapping) or 'to' not in entry:
            raise ConfigurationError(f"{here}: edge must be a mapping with a 'to' state")
        to = _parse_state(entry['to'], here)
        if to == from_state:
            raise ConfigurationError(f"{here}: self-transition {to.name} is not allowed")
        if to in seen:
            raise ConfigurationError(f"{here}: duplicate edge to {to.name}")
        if to == DiseaseStatus.SUSCEPTIBLE:
            raise ConfigurationError(f"{here}: no edge may lead back to SUSCEPTIBLE")
        seen.add(to)
        weight = _parse_weight(entry.get('weight', 1.0), here)
        try:
            sampler = build_sampler(entry)
        except ConfigurationError as exc:
            raise ConfigurationError(f"{here}: {exc}") from None
        edges.append(Edge(to=to, sampler=sampler, weight=weight))
    return edges


def _check_total(edges: Mapping[DiseaseStatus, Sequence[Edge]]) -> None:
    """Every non-terminal state reachable from ENTRY_STATE must have edges."""
    if not edges.get(ENTRY_STATE):
        raise ConfigurationError(
            f"transitions: {ENTRY_STATE.name} must have at least one outgoing edge"
        )
    stack = [ENTRY_STATE]
    visited = set()
    while stack:
        s = stack.pop()
        if s in visited:
            continue
        visited.add(s)
        out = edges.get(s, ())
        if not out and s != TERMINAL_STATE:
            raise ConfigurationError(
                f"transitions: state {s.name} is reachable but has no outgoing edge"
            )
        stack.extend(e.to for e in out)


def build_table(spec: Mapping[Any, Any]) -> TransitionTable:
    """Parse and validate a transition specification.

    Args:
        spec: Mapping from source state to one edge mapping or a list of
            edge mappings (see module docstring).

    Returns:
        Immutable TransitionTable.

    Raises:
        ConfigurationError: On any malformed or incomplete specification.
    """
    if not isinstance(spec, Mapping) or not spec:
        raise ConfigurationError("transitions: expected a non-empty mapping of source states")

    edges: Dict[DiseaseStatus, List[Edge]] = {}
    for raw_from, raw_edges in spec.items():
        from_state = _parse_state(raw_from, "transitions")
        if from_state in (DiseaseStatus.SUSCEPTIBLE, TERMINAL_STATE):
            raise ConfigurationError(
                f"transitions: {from_state.name} cannot have outgoing edges"
            )
        if from_state in edges:
            raise ConfigurationError(f"transitions: {from_state.name} listed twice")
        edges[from_state] = _parse_edges(from_state, raw_edges)

    _check_total(edges)
    return TransitionTable(edges)


def default_table() -> TransitionTable:
    """The built-in progression table."""
    return build_table(DEFAULT_TRANSITIONS)


def iter_edges(table: TransitionTable) -> Iterable[Tuple[DiseaseStatus, Edge]]:
    """All (from_state, edge) pairs in state order."""
    for s in DiseaseStatus:
        for e in table.edges(s):
            yield s, e
