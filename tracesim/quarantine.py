"""Quarantine policy: an agent's quarantine status and its expiry rule.

    NONE ──symptom onset──────────────→ FULL
    NONE ──traced / location outbreak─→ AT_HOME
    FULL | AT_HOME ──> NONE   when SUSCEPTIBLE and more than `release_days`
                              days have passed since quarantine began,
                              or on reaching RECOVERED

Symptom onset always sets FULL, also over an existing AT_HOME quarantine.
"""

from __future__ import annotations

from tracesim.types import Agent, DiseaseStatus, QuarantineStatus


class QuarantinePolicy:
    """Applies quarantine transitions. Stateless apart from its parameter."""

    def __init__(self, release_days: int = 14):
        self.release_days = release_days

    def on_transition(
        self,
        agent: Agent,
        now: float,
        day: int,
        from_state: DiseaseStatus,
        to_state: DiseaseStatus,
    ) -> None:
        """Transition subscriber: self-isolation on symptoms, release on recovery."""
        if to_state == DiseaseStatus.SHOWING_SYMPTOMS:
            agent.set_quarantine_status(QuarantineStatus.FULL, day)
        elif to_state == DiseaseStatus.RECOVERED and agent.quarantine_status != QuarantineStatus.NONE:
            agent.set_quarantine_status(QuarantineStatus.NONE, day)

    def quarantine_contact(self, agent: Agent, day: int) -> bool:
        """Send a traced agent into home quarantine.

        Only agents not already quarantined and not RECOVERED are affected.

        Returns:
            True if the agent's status changed.
        """
        if (agent.quarantine_status == QuarantineStatus.NONE
                and agent.disease_status != DiseaseStatus.RECOVERED):
            agent.set_quarantine_status(QuarantineStatus.AT_HOME, day)
            return True
        return False

    def maybe_release(self, agent: Agent, day: int) -> bool:
        """Release a healthy agent whose quarantine has run its course.

        Released on day quarantine_day + release_days + 1, i.e. the 15th day
        after quarantine began for the default of 14.

        Returns:
            True if the agent was released.
        """
        if (agent.disease_status == DiseaseStatus.SUSCEPTIBLE
                and agent.quarantine_status != QuarantineStatus.NONE
                and agent.days_since_quarantine(day) > self.release_days):
            agent.set_quarantine_status(QuarantineStatus.NONE, day)
            return True
        return False
