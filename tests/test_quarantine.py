"""Tests for tracesim.quarantine — quarantine status transitions and release."""

import pytest

from tracesim.quarantine import QuarantinePolicy
from tracesim.types import Agent, DiseaseStatus, QuarantineStatus


def _agent(status=DiseaseStatus.SUSCEPTIBLE, quarantine=QuarantineStatus.NONE, q_day=-1):
    a = Agent('a')
    a.disease_status = status
    a.quarantine_status = quarantine
    a.quarantine_day = q_day
    return a


class TestOnTransition:
    def test_symptom_onset_sets_full(self):
        a = _agent(DiseaseStatus.SHOWING_SYMPTOMS)
        QuarantinePolicy().on_transition(a, 0.0, 6, DiseaseStatus.CONTAGIOUS, DiseaseStatus.SHOWING_SYMPTOMS)
        assert a.quarantine_status == QuarantineStatus.FULL
        assert a.quarantine_day == 6

    def test_symptom_onset_upgrades_at_home(self):
        a = _agent(DiseaseStatus.SHOWING_SYMPTOMS, QuarantineStatus.AT_HOME, 2)
        QuarantinePolicy().on_transition(a, 0.0, 6, DiseaseStatus.CONTAGIOUS, DiseaseStatus.SHOWING_SYMPTOMS)
        assert a.quarantine_status == QuarantineStatus.FULL

    def test_recovery_releases(self):
        a = _agent(DiseaseStatus.RECOVERED, QuarantineStatus.FULL, 3)
        QuarantinePolicy().on_transition(a, 0.0, 12, DiseaseStatus.SHOWING_SYMPTOMS, DiseaseStatus.RECOVERED)
        assert a.quarantine_status == QuarantineStatus.NONE
        assert a.quarantine_day == 12

    def test_other_transitions_ignored(self):
        a = _agent(DiseaseStatus.CONTAGIOUS)
        QuarantinePolicy().on_transition(a, 0.0, 4, DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS,
                                         DiseaseStatus.CONTAGIOUS)
        assert a.quarantine_status == QuarantineStatus.NONE
        assert a.quarantine_day == -1


class TestQuarantineContact:
    def test_free_agent_goes_home(self):
        a = _agent()
        assert QuarantinePolicy().quarantine_contact(a, 5)
        assert a.quarantine_status == QuarantineStatus.AT_HOME
        assert a.quarantine_day == 5

    @pytest.mark.parametrize('quarantine', [QuarantineStatus.FULL, QuarantineStatus.AT_HOME])
    def test_already_quarantined_unchanged(self, quarantine):
        a = _agent(DiseaseStatus.CONTAGIOUS, quarantine, 2)
        assert not QuarantinePolicy().quarantine_contact(a, 5)
        assert a.quarantine_status == quarantine
        assert a.quarantine_day == 2

    def test_recovered_not_quarantined(self):
        a = _agent(DiseaseStatus.RECOVERED)
        assert not QuarantinePolicy().quarantine_contact(a, 5)
        assert a.quarantine_status == QuarantineStatus.NONE


class TestRelease:
    def test_released_on_fifteenth_day(self):
        policy = QuarantinePolicy()
        a = _agent(quarantine=QuarantineStatus.AT_HOME, q_day=10)
        released = [day for day in range(10, 30) if policy.maybe_release(a, day)]
        assert released == [25]
        assert a.quarantine_status == QuarantineStatus.NONE

    @pytest.mark.parametrize('day,expected', [(24, False), (25, True), (26, True)])
    def test_release_boundary(self, day, expected):
        a = _agent(quarantine=QuarantineStatus.AT_HOME, q_day=10)
        assert QuarantinePolicy().maybe_release(a, day) is expected

    def test_custom_release_days(self):
        a = _agent(quarantine=QuarantineStatus.FULL, q_day=0)
        policy = QuarantinePolicy(release_days=7)
        assert not policy.maybe_release(a, 7)
        assert policy.maybe_release(a, 8)

    @pytest.mark.parametrize('status', [
        DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS,
        DiseaseStatus.SHOWING_SYMPTOMS,
        DiseaseStatus.RECOVERED,
    ])
    def test_only_susceptible_released(self, status):
        a = _agent(status, QuarantineStatus.AT_HOME, 0)
        assert not QuarantinePolicy().maybe_release(a, 100)
        assert a.quarantine_status == QuarantineStatus.AT_HOME

    def test_not_quarantined_is_noop(self):
        a = _agent()
        assert not QuarantinePolicy().maybe_release(a, 100)
        assert a.quarantine_day == -1
