"""Population registry.

Holds agents in a stable insertion order. Every daily pass iterates in
this order, which fixes the draw order and the order in which tracing
capacity is consumed.

Also turns the external exposure stream into contacts and infections, and
seeds the initial infections.
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Sequence

from tracesim.types import Agent, DiseaseStatus, ExposureEvent, QuarantineStatus

if TYPE_CHECKING:
    from tracesim.model import TracingModel


class Population:
    """Agents keyed by id, iterated in insertion order."""

    def __init__(self, agents: Iterable[Agent] = ()):
        self._agents: Dict[str, Agent] = {}
        for agent in agents:
            self.add(agent)

    @classmethod
    def from_households(cls, household_sizes: Sequence[int], prefix: str = 'p') -> 'Population':
        """Create susceptible agents grouped into households.

        Agent ids are f"{prefix}{n}" numbered across the whole population;
        household ids are f"hh{i}".
        """
        pop = cls()
        n = 0
        for i, size in enumerate(household_sizes):
            for _ in range(size):
                pop.add(Agent(agent_id=f"{prefix}{n}", household_id=f"hh{i}"))
                n += 1
        return pop

    def add(self, agent: Agent) -> None:
        if agent.agent_id in self._agents:
            raise ValueError(f"Duplicate agent id '{agent.agent_id}'")
        self._agents[agent.agent_id] = agent

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents.values())

    def __getitem__(self, agent_id: str) -> Agent:
        return self._agents[agent_id]

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    # ── Contacts & infections ─────────────────────────────────────────

    def record_contact(self, a_id: str, b_id: str, time: float) -> None:
        """Record a symmetric traceable contact at `time` (seconds)."""
        a, b = self._agents[a_id], self._agents[b_id]
        a.add_contact(b, time)
        b.add_contact(a, time)

    def apply_exposures(
        self,
        events: Iterable[ExposureEvent],
        model: 'TracingModel',
        day: int,
    ) -> int:
        """Apply one day's exposure events in stream order.

        Every event becomes a contact; events flagged `infected` infect a
        still-susceptible target at the event's location.

        Returns:
            Number of new infections.
        """
        infections = 0
        for ev in events:
            self.record_contact(ev.source_id, ev.target_id, ev.time)
            target = self._agents[ev.target_id]
            if ev.infected and target.disease_status == DiseaseStatus.SUSCEPTIBLE:
                model.infect(target, day, ev.location_id)
                infections += 1
        return infections

    def seed_infections(self, n: int, model: 'TracingModel', day: int) -> List[Agent]:
        """Infect `n` randomly chosen susceptible agents (no infection location).

        Draws one choice from model.rng. Raises ValueError if fewer than `n`
        agents are susceptible.
        """
        susceptible = [a for a in self if a.disease_status == DiseaseStatus.SUSCEPTIBLE]
        if n > len(susceptible):
            raise ValueError(f"Cannot seed {n} infections, only {len(susceptible)} susceptible")
        if n == 0:
            return []
        picks = sorted(model.rng.choice(len(susceptible), size=n, replace=False))
        seeded = [susceptible[i] for i in picks]
        for agent in seeded:
            model.infect(agent, day, None)
        return seeded

    # ── Summaries ─────────────────────────────────────────────────────

    def status_counts(self) -> Dict[DiseaseStatus, int]:
        counts = Counter(a.disease_status for a in self)
        return {s: counts.get(s, 0) for s in DiseaseStatus}

    def quarantine_counts(self) -> Dict[QuarantineStatus, int]:
        counts = Counter(a.quarantine_status for a in self)
        return {s: counts.get(s, 0) for s in QuarantineStatus}
