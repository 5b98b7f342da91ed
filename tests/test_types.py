"""Tests for tracesim.types — enums and the Agent record."""

import pytest

from tracesim.types import (
    DAY,
    Agent,
    CapacityType,
    DiseaseStatus,
    ExposureEvent,
    QuarantineStatus,
    TracingStrategy,
)


class TestDiseaseStatus:
    def test_ordinals(self):
        assert DiseaseStatus.SUSCEPTIBLE == 0
        assert DiseaseStatus.RECOVERED == 7
        assert len(DiseaseStatus) == 8

    @pytest.mark.parametrize('name', [
        'showing_symptoms', 'showingSymptoms', 'SHOWING_SYMPTOMS', 'showing-symptoms',
    ])
    def test_parse_name_variants(self, name):
        assert DiseaseStatus.parse(name) is DiseaseStatus.SHOWING_SYMPTOMS

    def test_parse_ordinal_and_member(self):
        assert DiseaseStatus.parse(5) is DiseaseStatus.CRITICAL
        assert DiseaseStatus.parse(DiseaseStatus.CRITICAL) is DiseaseStatus.CRITICAL

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown disease status"):
            DiseaseStatus.parse('zombie')


class TestEnums:
    def test_strategy_values(self):
        assert TracingStrategy('location_with_testing') is TracingStrategy.LOCATION_WITH_TESTING
        assert not TracingStrategy.CONTACT.uses_locations
        assert TracingStrategy.LOCATION.uses_locations
        assert TracingStrategy.LOCATION_WITH_TESTING.uses_locations

    def test_capacity_type_values(self):
        assert CapacityType('per_person') is CapacityType.PER_PERSON
        assert CapacityType('per_contact_person') is CapacityType.PER_CONTACT_PERSON

    def test_quarantine_default(self):
        assert Agent('a').quarantine_status == QuarantineStatus.NONE


class TestAgentHealth:
    def test_new_agent_is_susceptible(self):
        a = Agent('a', household_id='hh0')
        assert a.disease_status == DiseaseStatus.SUSCEPTIBLE
        assert a.history == []
        assert a.next_state is None
        assert a.next_transition_day == -1

    def test_history_and_days_since(self):
        a = Agent('a')
        a.set_disease_status(DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS, 3)
        a.set_disease_status(DiseaseStatus.CONTAGIOUS, 6)
        assert a.had_status(DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS)
        assert not a.had_status(DiseaseStatus.SHOWING_SYMPTOMS)
        assert a.days_since(DiseaseStatus.CONTAGIOUS, 10) == 4
        assert a.days_since(DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS, 10) == 7

    def test_days_since_uses_last_entry(self):
        a = Agent('a')
        a.set_disease_status(DiseaseStatus.SERIOUSLY_SICK, 2)
        a.set_disease_status(DiseaseStatus.CRITICAL, 3)
        a.set_disease_status(DiseaseStatus.SERIOUSLY_SICK, 9)
        assert a.days_since(DiseaseStatus.SERIOUSLY_SICK, 10) == 1

    def test_days_since_never_had(self):
        with pytest.raises(ValueError, match="never had"):
            Agent('a').days_since(DiseaseStatus.CRITICAL, 1)

    def test_quarantine_fields(self):
        a = Agent('a')
        a.set_quarantine_status(QuarantineStatus.AT_HOME, 4)
        assert a.quarantine_day == 4
        assert a.days_since_quarantine(19) == 15


class TestAgentContacts:
    def test_contacts_ignore_self(self):
        a = Agent('a')
        a.add_contact(a, 10.0)
        assert a.contacts == {}

    def test_repeated_contact_keeps_latest_time(self):
        a, b = Agent('a'), Agent('b')
        a.add_contact(b, 5 * DAY)
        a.add_contact(b, 3 * DAY)
        assert a.contacts['b'][1] == 5 * DAY
        a.add_contact(b, 7 * DAY)
        assert a.contacts['b'][1] == 7 * DAY

    def test_traceable_contacts_window_and_order(self):
        a, b, c, d = Agent('a'), Agent('b'), Agent('c'), Agent('d')
        a.add_contact(c, 6 * DAY)
        a.add_contact(b, 2 * DAY)
        a.add_contact(d, 4 * DAY)
        assert a.traceable_contacts(4 * DAY) == [c, d]

    def test_clear_contacts(self):
        a, b, c = Agent('a'), Agent('b'), Agent('c')
        a.add_contact(b, 1 * DAY)
        a.add_contact(c, 5 * DAY)
        assert a.clear_contacts(5 * DAY) == 1
        assert list(a.contacts) == ['c']


class TestExposureEvent:
    def test_defaults(self):
        ev = ExposureEvent('a', 'b', 3.5 * DAY)
        assert ev.location_id is None
        assert not ev.infected

    def test_frozen(self):
        ev = ExposureEvent('a', 'b', 0.0)
        with pytest.raises(AttributeError):
            ev.infected = True
