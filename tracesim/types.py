"""Core data types for tracesim.

This module is the SINGLE SOURCE OF TRUTH for:
  - DiseaseStatus, QuarantineStatus, TracingStrategy, CapacityType enumerations
  - The Agent record (health history, quarantine fields, traceable contacts)
  - Inter-module data transfer objects (ExposureEvent)

Agents are plain records. Health fields are written only by the progression
engine; quarantine fields by the progression engine and the tracing engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Tuple, Union


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

def _normalize_name(name: str) -> str:
    return name.replace('_', '').replace('-', '').lower()


class DiseaseStatus(IntEnum):
    """Per-agent health states.

    SUSCEPTIBLE → INFECTED_BUT_NOT_CONTAGIOUS → CONTAGIOUS
    CONTAGIOUS  → SHOWING_SYMPTOMS | RECOVERED
    SHOWING_SYMPTOMS → SERIOUSLY_SICK | RECOVERED
    SERIOUSLY_SICK   → CRITICAL | RECOVERED
    CRITICAL → SERIOUSLY_SICK_AFTER_CRITICAL → RECOVERED

    RECOVERED is terminal. SUSCEPTIBLE only leaves via infection.
    """
    SUSCEPTIBLE = 0
    INFECTED_BUT_NOT_CONTAGIOUS = 1
    CONTAGIOUS = 2
    SHOWING_SYMPTOMS = 3
    SERIOUSLY_SICK = 4
    CRITICAL = 5
    SERIOUSLY_SICK_AFTER_CRITICAL = 6
    RECOVERED = 7

    @classmethod
    def parse(cls, value: Union[str, int, 'DiseaseStatus']) -> 'DiseaseStatus':
        """Resolve a status from an enum, ordinal or name.

        Names match case-insensitively with or without separators, so
        'showing_symptoms', 'showingSymptoms' and 'SHOWING_SYMPTOMS' are
        equivalent.

        Raises:
            ValueError: If the value names no status.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        key = _normalize_name(str(value))
        for member in cls:
            if _normalize_name(member.name) == key:
                return member
        raise ValueError(f"Unknown disease status '{value}'")


class QuarantineStatus(IntEnum):
    """Quarantine state of an agent."""
    NONE = 0      # Not quarantined
    FULL = 1      # Self-isolation on symptom onset
    AT_HOME = 2   # Traced or outbreak-driven home quarantine


class TracingStrategy(str, Enum):
    """Which tracing procedures run."""
    CONTACT = 'contact'                              # Per-index-case tracing only
    LOCATION = 'location'                            # + location-outbreak tracing
    LOCATION_WITH_TESTING = 'location_with_testing'  # + second-order contacts of outbreak agents

    @property
    def uses_locations(self) -> bool:
        return self is not TracingStrategy.CONTACT


class CapacityType(str, Enum):
    """What one unit of daily tracing capacity pays for."""
    PER_CONTACT_PERSON = 'per_contact_person'  # One traced contact
    PER_PERSON = 'per_person'                  # One traced index case


# Seconds per simulated day
DAY = 24.0 * 3600.0


# ═══════════════════════════════════════════════════════════════════════
# AGENT RECORD
# ═══════════════════════════════════════════════════════════════════════

@dataclass(eq=False)
class Agent:
    """One simulated individual.

    Created SUSCEPTIBLE with an empty history. `next_state` and
    `next_transition_day` hold the transition decided on entering the
    current state (None / -1 when no transition is pending).

    Contacts are kept as {contact_id: (agent, time)} in first-seen order;
    a repeated contact keeps its latest timestamp (seconds of simulated time).
    """
    agent_id: str
    household_id: Optional[str] = None
    disease_status: DiseaseStatus = DiseaseStatus.SUSCEPTIBLE
    history: List[Tuple[DiseaseStatus, int]] = field(default_factory=list)
    next_state: Optional[DiseaseStatus] = None
    next_transition_day: int = -1
    quarantine_status: QuarantineStatus = QuarantineStatus.NONE
    quarantine_day: int = -1
    infection_location: Optional[str] = None
    contacts: Dict[str, Tuple['Agent', float]] = field(default_factory=dict, repr=False)

    # ── Health ────────────────────────────────────────────────────────

    def set_disease_status(self, status: DiseaseStatus, day: int) -> None:
        """Enter `status` on `day` and record it in the history."""
        self.disease_status = status
        self.history.append((status, day))

    def had_status(self, status: DiseaseStatus) -> bool:
        """True if the agent has ever entered `status`."""
        return any(s == status for s, _ in self.history)

    def days_since(self, status: DiseaseStatus, day: int) -> int:
        """Days elapsed since the agent last entered `status`.

        Raises:
            ValueError: If the agent never had `status`.
        """
        for s, entered in reversed(self.history):
            if s == status:
                return day - entered
        raise ValueError(
            f"Agent {self.agent_id} never had status {status.name}"
        )

    # ── Quarantine ────────────────────────────────────────────────────

    def set_quarantine_status(self, status: QuarantineStatus, day: int) -> None:
        self.quarantine_status = status
        self.quarantine_day = day

    def days_since_quarantine(self, day: int) -> int:
        return day - self.quarantine_day

    # ── Contacts ──────────────────────────────────────────────────────

    def add_contact(self, other: 'Agent', time: float) -> None:
        """Record a traceable contact with `other` at `time` (seconds)."""
        if other is self:
            return
        previous = self.contacts.get(other.agent_id)
        if previous is None or previous[1] < time:
            self.contacts[other.agent_id] = (other, time)

    def traceable_contacts(self, since: float) -> List['Agent']:
        """Contacts recorded at or after `since`, in first-seen order."""
        return [a for a, t in self.contacts.values() if t >= since]

    def clear_contacts(self, before: float) -> int:
        """Drop contacts recorded before `before`. Returns number dropped."""
        stale = [cid for cid, (_, t) in self.contacts.items() if t < before]
        for cid in stale:
            del self.contacts[cid]
        return len(stale)


# ═══════════════════════════════════════════════════════════════════════
# INTER-MODULE DATA TRANSFER OBJECTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ExposureEvent:
    """Produced by the external event layer; consumed by Population.apply_exposures.

    A contact between `source_id` and `target_id` at `time` (seconds of
    simulated time). `infected=True` means the target was infected by the
    contact at `location_id`.
    """
    source_id: str
    target_id: str
    time: float
    location_id: Optional[str] = None
    infected: bool = False
