"""Disease progression engine — per-agent stochastic state machine.

Implements:
  - Infection: SUSCEPTIBLE → INFECTED_BUT_NOT_CONTAGIOUS with the first
    transition scheduled immediately
  - On entering any non-terminal state, the next state and its dwell time are
    decided together and stored on the agent:
        next_state          = decide_next_state(agent)
        next_transition_day = day + decide_transition_day(agent, state, next_state)
  - A daily tick at or after next_transition_day performs the stored
    transition (at most one per agent per tick)
  - Every transition is announced to an ordered list of subscribers,
    synchronously: callback(agent, now, day, from_state, to_state)

Next-state choice:
  - single outgoing edge → deterministic, no random draw
  - several edges → one uniform draw against the branch probabilities set on
    the SeverityPolicy, or the table's edge weights where it sets none
  - only one branch with positive probability → deterministic, no draw

Draw order per transition: next-state choice, then dwell sample, then
whatever the subscribers draw.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from tracesim.config import ProgressionSection
from tracesim.errors import MissingTransition, ProgressionError
from tracesim.transitions import TransitionTable
from tracesim.types import Agent, DiseaseStatus
from tracesim.utils import corrected_time

logger = logging.getLogger(__name__)

TransitionCallback = Callable[[Agent, float, int, DiseaseStatus, DiseaseStatus], None]
Probability = Union[float, Callable[[Agent], float]]


# ═══════════════════════════════════════════════════════════════════════
# SEVERITY POLICY
# ═══════════════════════════════════════════════════════════════════════

class SeverityPolicy:
    """Branch probabilities for the severity tiers.

    Each probability is a constant, a function of the agent, or None. None
    leaves that branch to the relative edge weights of the transition table,
    so risk stratification can be injected without subclassing:

        SeverityPolicy(seriously_sick=lambda a: 0.2 if a.household_id in care_homes else 0.05)

    A SERIOUSLY_SICK agent that already was CRITICAL always recovers.
    """

    def __init__(
        self,
        symptomatic: Optional[Probability] = 0.8,
        seriously_sick: Optional[Probability] = 0.05625,
        critical: Optional[Probability] = 0.25,
    ):
        self._symptomatic = symptomatic
        self._seriously_sick = seriously_sick
        self._critical = critical

    @classmethod
    def from_config(cls, cfg: ProgressionSection) -> 'SeverityPolicy':
        """Policy from the configured probabilities; unset ones follow the table weights."""
        return cls(
            symptomatic=cfg.symptomatic_probability,
            seriously_sick=cfg.seriously_sick_probability,
            critical=cfg.critical_probability,
        )

    @classmethod
    def table_weights(cls) -> 'SeverityPolicy':
        """Policy that only enforces the single-CRITICAL rule."""
        return cls(symptomatic=None, seriously_sick=None, critical=None)

    @staticmethod
    def _resolve(p: Optional[Probability], agent: Agent) -> Optional[float]:
        if p is None:
            return None
        return float(p(agent)) if callable(p) else float(p)

    def prob_symptomatic(self, agent: Agent) -> Optional[float]:
        """P(CONTAGIOUS → SHOWING_SYMPTOMS)."""
        return self._resolve(self._symptomatic, agent)

    def prob_seriously_sick(self, agent: Agent) -> Optional[float]:
        """P(SHOWING_SYMPTOMS → SERIOUSLY_SICK)."""
        return self._resolve(self._seriously_sick, agent)

    def prob_critical(self, agent: Agent) -> Optional[float]:
        """P(SERIOUSLY_SICK → CRITICAL)."""
        return self._resolve(self._critical, agent)

    @staticmethod
    def _binary(p: Optional[float], worse: DiseaseStatus) -> Optional[Dict[DiseaseStatus, float]]:
        if p is None:
            return None
        return {worse: p, DiseaseStatus.RECOVERED: 1.0 - p}

    def branch_probabilities(
        self,
        agent: Agent,
        state: DiseaseStatus,
    ) -> Optional[Dict[DiseaseStatus, float]]:
        """Ordered {next_state: probability} for `state`, or None for table weights."""
        if state == DiseaseStatus.CONTAGIOUS:
            return self._binary(self.prob_symptomatic(agent), DiseaseStatus.SHOWING_SYMPTOMS)
        if state == DiseaseStatus.SHOWING_SYMPTOMS:
            return self._binary(self.prob_seriously_sick(agent), DiseaseStatus.SERIOUSLY_SICK)
        if state == DiseaseStatus.SERIOUSLY_SICK:
            if agent.had_status(DiseaseStatus.CRITICAL):
                return {DiseaseStatus.RECOVERED: 1.0}
            return self._binary(self.prob_critical(agent), DiseaseStatus.CRITICAL)
        return None


# ═══════════════════════════════════════════════════════════════════════
# ENGINE
# ═══════════════════════════════════════════════════════════════════════

class ProgressionEngine:
    """Owns per-agent health state transitions.

    Args:
        table: Transition table (edges and dwell-time samplers).
        rng: The run's shared random source.
        policy: Branch probability policy; default SeverityPolicy.table_weights().
        subscribers: Transition callbacks, invoked in list order.
        time_offset: Start offset in seconds, passed to corrected_time().
    """

    def __init__(
        self,
        table: TransitionTable,
        rng: np.random.Generator,
        policy: Optional[SeverityPolicy] = None,
        subscribers: Optional[Sequence[TransitionCallback]] = None,
        time_offset: float = 0.0,
    ):
        self.table = table
        self.rng = rng
        self.policy = policy if policy is not None else SeverityPolicy.table_weights()
        self.subscribers: List[TransitionCallback] = list(subscribers or [])
        self.time_offset = time_offset

    def subscribe(self, callback: TransitionCallback) -> None:
        """Append a transition callback; it runs after those already registered."""
        self.subscribers.append(callback)

    # ── Transitions ───────────────────────────────────────────────────

    def infect(self, agent: Agent, day: int, location_id: Optional[str] = None) -> None:
        """Infect a susceptible agent at `location_id` (None for seed infections).

        Raises:
            ValueError: If the agent is not SUSCEPTIBLE.
        """
        if agent.disease_status != DiseaseStatus.SUSCEPTIBLE:
            raise ValueError(
                f"Agent {agent.agent_id} is {agent.disease_status.name}, not SUSCEPTIBLE"
            )
        agent.infection_location = location_id
        self._enter(agent, DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS, day)

    def update_state(self, agent: Agent, day: int) -> Optional[DiseaseStatus]:
        """Perform the agent's scheduled transition if it is due.

        Returns:
            The newly entered state, or None if nothing changed.
        """
        if agent.next_state is None or day < agent.next_transition_day:
            return None
        to_state = agent.next_state
        self._enter(agent, to_state, day)
        return to_state

    def _enter(self, agent: Agent, to_state: DiseaseStatus, day: int) -> None:
        from_state = agent.disease_status
        agent.set_disease_status(to_state, day)

        if self.table.is_terminal(to_state):
            agent.next_state = None
            agent.next_transition_day = -1
        else:
            next_state = self.decide_next_state(agent)
            agent.next_state = next_state
            agent.next_transition_day = day + self.decide_transition_day(agent, to_state, next_state)

        now = corrected_time(self.time_offset, 0.0, day)
        for callback in self.subscribers:
            callback(agent, now, day, from_state, to_state)

    # ── Decisions ─────────────────────────────────────────────────────

    def decide_next_state(self, agent: Agent) -> DiseaseStatus:
        """Choose the state following the agent's current one.

        Raises:
            ProgressionError: If the current state has no outgoing edge.
        """
        state = agent.disease_status
        edges = self.table.edges(state)
        if not edges:
            raise ProgressionError(f"No state transition defined for {state.name}")
        if len(edges) == 1:
            return edges[0].to

        probs = self.policy.branch_probabilities(agent, state)
        # Policy only applies where its branches are edges of the table
        if probs is not None and not all(self.table.has_edge(state, s) for s in probs):
            probs = None
        if probs is None:
            branches: List[Tuple[DiseaseStatus, float]] = [(e.to, e.weight) for e in edges]
        else:
            branches = [(s, p) for s, p in probs.items() if p > 0.0]
        if not branches:
            raise ProgressionError(f"No branch with positive probability out of {state.name}")
        if len(branches) == 1:
            return branches[0][0]

        total = sum(w for _, w in branches)
        u = self.rng.random() * total
        acc = 0.0
        for s, w in branches:
            acc += w
            if u < acc:
                return s
        return branches[-1][0]

    def decide_transition_day(
        self,
        agent: Agent,
        from_state: DiseaseStatus,
        to_state: DiseaseStatus,
    ) -> int:
        """Sample the dwell time (days) for the edge from → to.

        Raises:
            ProgressionError: If the edge is not in the transition table.
        """
        try:
            sampler = self.table.lookup(from_state, to_state)
        except MissingTransition as exc:
            logger.error("Agent %s: %s", agent.agent_id, exc)
            raise ProgressionError(str(exc)) from exc
        return sampler.sample(self.rng)
