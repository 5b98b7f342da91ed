"""Contact tracing engine — capacity-limited tracing and location outbreaks.

Two coupled procedures:

  perform_tracing(index_case, now, day)
      Runs when an agent starts showing symptoms (immediately when the
      tracing delay is 0, otherwise exactly `delay` days later). Walks the
      index case's traceable contacts (recorded within `day_distance` days
      before `now`) and sends every successfully traced contact into home
      quarantine. Household members are traced with certainty when the
      household flag is set; others with the day's tracing probability.

  before_state_updates(agents, day)
      Once per day, before individual updates. Every location whose
      symptomatic-onset counter reached the threshold has all agents
      infected there quarantined and traced; its counter is removed.

Capacity accounting:
  - PER_CONTACT_PERSON: one unit per visited contact, decremented BEFORE the
    exhaustion check (remaining capacity n traces at most n-1 contacts)
  - PER_PERSON: one unit per index case, after all its contacts
  Running out is not an error; the day's tracing simply stops.

Random draws: one per non-household contact when 0 < probability < 1,
none otherwise.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Union

import numpy as np

from tracesim.config import TRACING_DEFAULTS, TracingSection, find_valid_entry
from tracesim.quarantine import QuarantinePolicy
from tracesim.types import DAY, Agent, CapacityType, DiseaseStatus, TracingStrategy
from tracesim.utils import corrected_time, date_of_day

logger = logging.getLogger(__name__)

# Unlimited daily capacity
UNBOUNDED = math.inf

# Infection containers that are not counted towards location outbreaks
EXCLUDED_LOCATION_PREFIXES = ('home', 'tr')


# ═══════════════════════════════════════════════════════════════════════
# DAILY PARAMETERS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TracingParams:
    """Tracing parameters in force for one simulated day."""
    capacity: Union[int, float]   # UNBOUNDED or a non-negative integer
    probability: float
    delay: int
    day_distance: int
    quarantine_household: bool
    capacity_type: CapacityType
    strategy: TracingStrategy
    location_threshold: int

    @classmethod
    def resolve(cls, cfg: TracingSection, when: date, sample_size: float = 1.0) -> 'TracingParams':
        """Resolve every schedule for `when`.

        A bounded capacity is scaled by `sample_size` and truncated.
        """
        def get(name: str) -> Any:
            return find_valid_entry(getattr(cfg, name), TRACING_DEFAULTS[name], when)

        capacity = get('capacity')
        capacity = UNBOUNDED if capacity is None else int(capacity * sample_size)
        return cls(
            capacity=capacity,
            probability=float(get('probability')),
            delay=int(get('delay')),
            day_distance=int(get('day_distance')),
            quarantine_household=bool(get('quarantine_household')),
            capacity_type=CapacityType(get('capacity_type')),
            strategy=TracingStrategy(get('strategy')),
            location_threshold=int(get('location_threshold')),
        )


def counts_towards_outbreak(location_id: Optional[str]) -> bool:
    """Seed infections (no location), homes and transit are not outbreak signals."""
    return location_id is not None and not str(location_id).startswith(EXCLUDED_LOCATION_PREFIXES)


# ═══════════════════════════════════════════════════════════════════════
# ENGINE
# ═══════════════════════════════════════════════════════════════════════

class ContactTracingEngine:
    """Contact and location-outbreak tracing.

    Args:
        cfg: Tracing configuration section (scalars or schedules).
        quarantine: Policy used to quarantine traced agents.
        rng: The run's shared random source.
        start_date: Calendar date of simulated day 1.
        sample_size: Scale factor for absolute capacities.
        time_offset: Start offset in seconds, passed to corrected_time().
    """

    def __init__(
        self,
        cfg: TracingSection,
        quarantine: QuarantinePolicy,
        rng: np.random.Generator,
        start_date: Union[str, date],
        sample_size: float = 1.0,
        time_offset: float = 0.0,
    ):
        self.cfg = cfg
        self.quarantine = quarantine
        self.rng = rng
        self.start_date = start_date
        self.sample_size = sample_size
        self.time_offset = time_offset

        # Symptomatic onsets per infection location since it was last traced
        self.location_counts: Dict[str, int] = {}

        self.params = TracingParams.resolve(cfg, date_of_day(start_date, 1), sample_size)
        self.capacity: Union[int, float] = self.params.capacity
        self._exhaustion_logged = False

    # ── Daily hooks ───────────────────────────────────────────────────

    def set_iteration(self, day: int) -> None:
        """Refresh capacity and the other daily parameters for `day`."""
        self.params = TracingParams.resolve(self.cfg, date_of_day(self.start_date, day), self.sample_size)
        self.capacity = self.params.capacity
        self._exhaustion_logged = False

    def before_state_updates(self, agents: Iterable[Agent], day: int) -> None:
        """Location-outbreak tracing, based on counts accumulated up to yesterday."""
        due = [loc for loc, n in self.location_counts.items()
               if n >= self.params.location_threshold]
        if not due:
            return

        agents = list(agents)
        now = corrected_time(self.time_offset, 0.0, day)
        since = now - self.params.day_distance * DAY

        for location_id in due:
            logger.info(
                "Trace location %s (%d symptomatic onsets, threshold %d) on day %d",
                location_id, self.location_counts[location_id],
                self.params.location_threshold, day,
            )
            for person in agents:
                if person.infection_location != location_id:
                    continue
                self.quarantine.quarantine_contact(person, day)
                self.perform_tracing(person, now, day)

                # Contacts are assumed tested; the infected ones are
                # quarantined and traced in turn
                if self.params.strategy == TracingStrategy.LOCATION_WITH_TESTING:
                    for contact in person.traceable_contacts(since):
                        if contact.had_status(DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS):
                            self.quarantine.quarantine_contact(contact, day)
                            self.perform_tracing(contact, now, day)

            del self.location_counts[location_id]

    def on_transition(
        self,
        agent: Agent,
        now: float,
        day: int,
        from_state: DiseaseStatus,
        to_state: DiseaseStatus,
    ) -> None:
        """Transition subscriber: trace and count on symptom onset."""
        if to_state != DiseaseStatus.SHOWING_SYMPTOMS:
            return

        if self.params.delay == 0:
            self.perform_tracing(agent, now, day)

        if self.params.strategy.uses_locations and counts_towards_outbreak(agent.infection_location):
            loc = agent.infection_location
            self.location_counts[loc] = self.location_counts.get(loc, 0) + 1

    def after_update(self, agent: Agent, day: int) -> None:
        """Delayed tracing and pruning of contacts too old to be traced."""
        delay = self.params.delay
        now = corrected_time(self.time_offset, 0.0, day)

        if (delay > 0
                and agent.had_status(DiseaseStatus.SHOWING_SYMPTOMS)
                and agent.days_since(DiseaseStatus.SHOWING_SYMPTOMS, day) == delay):
            self.perform_tracing(agent, now - delay * DAY, day)

        agent.clear_contacts(now - (delay + self.params.day_distance + 1) * DAY)

    # ── Tracing ───────────────────────────────────────────────────────

    def is_active(self, day: int) -> bool:
        activation = self.cfg.activation_day
        return activation is not None and day >= activation

    def perform_tracing(self, index_case: Agent, now: float, day: int) -> int:
        """Trace the contacts of one index case.

        Args:
            index_case: Agent whose contacts are traced.
            now: Reference time (seconds); contacts since now − day_distance
                days are traceable.
            day: Current simulated day (quarantine start day).

        Returns:
            Number of contacts newly quarantined.
        """
        if not self.is_active(day) or self.capacity <= 0:
            return 0

        p = self.params
        home_id = index_case.household_id if p.quarantine_household else None
        quarantined = 0

        for contact in index_case.traceable_contacts(now - p.day_distance * DAY):
            if p.capacity_type == CapacityType.PER_CONTACT_PERSON:
                self.capacity -= 1
                if self.capacity <= 0:
                    break

            if home_id is not None and home_id == contact.household_id:
                traced = True
            elif p.probability == 0.0:
                continue
            else:
                traced = p.probability == 1.0 or self.rng.random() < p.probability

            if traced and self.quarantine.quarantine_contact(contact, day):
                quarantined += 1
                logger.debug(
                    "Sending agent %s into quarantine because of contact to agent %s",
                    contact.agent_id, index_case.agent_id,
                )

        if p.capacity_type == CapacityType.PER_PERSON:
            self.capacity -= 1

        if self.capacity <= 0 and not self._exhaustion_logged:
            self._exhaustion_logged = True
            logger.debug("Tracing capacity exhausted for day %d", day)

        return quarantined

    # ── Checkpointing ─────────────────────────────────────────────────

    def state_dict(self) -> Dict[str, Any]:
        """Outbreak-detection state needed to resume a run."""
        return {'location_counts': dict(self.location_counts)}

    def load_state_dict(self, state: Dict[str, Any]) -> None:
        self.location_counts = {str(k): int(v) for k, v in state['location_counts'].items()}

    def pending_locations(self) -> List[str]:
        """Locations that will be traced on the next before_state_updates()."""
        return [loc for loc, n in self.location_counts.items()
                if n >= self.params.location_threshold]
