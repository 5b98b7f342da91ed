"""Tests for tracesim.checkpoint — save/restore of model and agent state."""

import numpy as np
import pytest

from tracesim.checkpoint import FORMAT_VERSION, load_checkpoint, save_checkpoint
from tracesim.config import SimulationConfig
from tracesim.model import TracingModel
from tracesim.population import Population
from tracesim.types import DAY, Agent, DiseaseStatus, ExposureEvent, QuarantineStatus

HOUSEHOLDS = [3, 2, 4, 1, 3, 2] * 5


def tracing_config():
    config = SimulationConfig()
    config.simulation.seed = 21
    config.tracing.activation_day = 3
    config.tracing.probability = 0.6
    config.tracing.capacity = 6
    config.tracing.strategy = 'location'
    config.tracing.location_threshold = 2
    return config


def exposures(pop, day):
    """Deterministic daily contact stream, independent of model state."""
    stream = np.random.default_rng(1000 + day)
    ids = [a.agent_id for a in pop]
    events = []
    for i, j in stream.integers(0, len(ids), size=(30, 2)):
        roll = stream.random()
        if i == j:
            continue
        source = pop[ids[i]]
        infectious = source.disease_status in (DiseaseStatus.CONTAGIOUS, DiseaseStatus.SHOWING_SYMPTOMS)
        events.append(ExposureEvent(ids[i], ids[j], day * DAY + 7200.0,
                                    location_id=f"work-{i % 3}", infected=infectious and roll < 0.3))
    return events


def simulate(model, pop, days):
    for day in days:
        model.step(pop, day)
        pop.apply_exposures(exposures(pop, day), model, day)


def snapshot(pop):
    return [
        (a.agent_id, a.household_id, a.disease_status, a.history, a.next_state,
         a.next_transition_day, a.quarantine_status, a.quarantine_day,
         a.infection_location, {cid: t for cid, (_, t) in a.contacts.items()})
        for a in pop
    ]


class TestModelState:
    def test_location_counts_round_trip(self, tmp_path):
        model = TracingModel(tracing_config())
        model.tracing.location_counts = {'work-1': 1, 'school-2': 5}
        path = tmp_path / 'ckpt' / 'state.npz'
        save_checkpoint(path, model, day=8)

        fresh = TracingModel(tracing_config())
        assert load_checkpoint(path, fresh) == 8
        assert fresh.tracing.location_counts == {'work-1': 1, 'school-2': 5}
        assert list(fresh.tracing.location_counts) == ['work-1', 'school-2']

    def test_restored_counts_trigger_identically(self, tmp_path):
        config = tracing_config()
        original = TracingModel(config)
        original.tracing.location_counts = {'work-1': 1}
        save_checkpoint(tmp_path / 'state.npz', original, day=4)
        restored = TracingModel(config)
        load_checkpoint(tmp_path / 'state.npz', restored)

        for model in (original, restored):
            a = Agent('onset')
            a.infection_location = 'work-1'
            model.tracing.on_transition(a, 5 * DAY, 5, DiseaseStatus.CONTAGIOUS,
                                        DiseaseStatus.SHOWING_SYMPTOMS)
        assert original.tracing.pending_locations() == restored.tracing.pending_locations() == ['work-1']

    def test_empty_counts(self, tmp_path):
        model = TracingModel(tracing_config())
        save_checkpoint(tmp_path / 'state.npz', model)
        fresh = TracingModel(tracing_config())
        fresh.tracing.location_counts = {'stale': 9}
        load_checkpoint(tmp_path / 'state.npz', fresh)
        assert fresh.tracing.location_counts == {}

    def test_rng_continues(self, tmp_path):
        model = TracingModel(tracing_config())
        model.rng.random(13)
        save_checkpoint(tmp_path / 'state.npz', model)
        fresh = TracingModel(tracing_config())
        load_checkpoint(tmp_path / 'state.npz', fresh)
        np.testing.assert_array_equal(fresh.rng.random(5), model.rng.random(5))


class TestAgentState:
    def test_agents_round_trip(self, tmp_path):
        model = TracingModel(tracing_config())
        pop = Population.from_households(HOUSEHOLDS)
        pop.seed_infections(4, model, day=1)
        simulate(model, pop, range(1, 15))
        pop['p0'].household_id = None
        save_checkpoint(tmp_path / 'state.npz', model, pop, day=14)

        fresh_model = TracingModel(tracing_config())
        fresh_pop = Population.from_households(HOUSEHOLDS)
        assert load_checkpoint(tmp_path / 'state.npz', fresh_model, fresh_pop) == 14
        assert snapshot(fresh_pop) == snapshot(pop)

        for agent in fresh_pop:
            for cid, (contact, _) in agent.contacts.items():
                assert contact is fresh_pop[cid]

    def test_resume_matches_uninterrupted_run(self, tmp_path):
        model = TracingModel(tracing_config())
        pop = Population.from_households(HOUSEHOLDS)
        pop.seed_infections(4, model, day=1)
        simulate(model, pop, range(1, 9))
        save_checkpoint(tmp_path / 'state.npz', model, pop, day=8)
        simulate(model, pop, range(9, 30))

        resumed_model = TracingModel(tracing_config())
        resumed_pop = Population.from_households(HOUSEHOLDS)
        day = load_checkpoint(tmp_path / 'state.npz', resumed_model, resumed_pop)
        simulate(resumed_model, resumed_pop, range(day + 1, 30))

        assert snapshot(resumed_pop) == snapshot(pop)
        assert resumed_model.tracing.location_counts == model.tracing.location_counts

    def test_quarantine_fields_restored(self, tmp_path):
        model = TracingModel(tracing_config())
        pop = Population([Agent('x', household_id='hh0')])
        pop['x'].set_quarantine_status(QuarantineStatus.AT_HOME, 6)
        save_checkpoint(tmp_path / 'state.npz', model, pop)

        fresh = Population([Agent('x')])
        load_checkpoint(tmp_path / 'state.npz', TracingModel(tracing_config()), fresh)
        assert fresh['x'].quarantine_status == QuarantineStatus.AT_HOME
        assert fresh['x'].quarantine_day == 6
        assert fresh['x'].household_id == 'hh0'
        assert fresh['x'].next_state is None


class TestErrors:
    def test_unknown_version(self, tmp_path):
        path = tmp_path / 'state.npz'
        np.savez_compressed(path, format_version=np.array(FORMAT_VERSION + 1))
        with pytest.raises(ValueError, match="Unsupported checkpoint format version"):
            load_checkpoint(path, TracingModel(tracing_config()))

    def test_agents_requested_but_absent(self, tmp_path):
        save_checkpoint(tmp_path / 'state.npz', TracingModel(tracing_config()))
        with pytest.raises(ValueError, match="holds no agent records"):
            load_checkpoint(tmp_path / 'state.npz', TracingModel(tracing_config()), Population())

    def test_unknown_agent_id(self, tmp_path):
        pop = Population([Agent('x'), Agent('y')])
        save_checkpoint(tmp_path / 'state.npz', TracingModel(tracing_config()), pop)
        with pytest.raises(KeyError):
            load_checkpoint(tmp_path / 'state.npz', TracingModel(tracing_config()),
                            Population([Agent('x')]))

    def test_failed_restore_leaves_model_untouched(self, tmp_path):
        saved = TracingModel(tracing_config())
        saved.tracing.location_counts = {'work-1': 3}
        save_checkpoint(tmp_path / 'state.npz', saved, Population([Agent('A'), Agent('B')]))

        model = TracingModel(tracing_config())
        model.tracing.location_counts = {'school-2': 1}
        model.rng.random()
        rng_before = model.rng.bit_generator.state
        with pytest.raises(KeyError, match="B"):
            load_checkpoint(tmp_path / 'state.npz', model, Population([Agent('A')]))
        assert model.tracing.location_counts == {'school-2': 1}
        assert model.rng.bit_generator.state == rng_before

    def test_unknown_contact_leaves_agents_untouched(self, tmp_path):
        pop = Population([Agent('x'), Agent('y')])
        pop['x'].set_disease_status(DiseaseStatus.CONTAGIOUS, 2)
        pop['y'].add_contact(Agent('outsider'), 2 * DAY)
        save_checkpoint(tmp_path / 'state.npz', TracingModel(tracing_config()), pop)

        fresh = Population([Agent('x'), Agent('y')])
        with pytest.raises(KeyError, match="outsider"):
            load_checkpoint(tmp_path / 'state.npz', TracingModel(tracing_config()), fresh)
        assert fresh['x'].disease_status == DiseaseStatus.SUSCEPTIBLE
        assert fresh['x'].history == []
        assert fresh['y'].contacts == {}

    def test_foreign_rng_state_rejected_before_restore(self, tmp_path):
        save_checkpoint(tmp_path / 'state.npz', TracingModel(tracing_config()))
        model = TracingModel(tracing_config(), rng=np.random.Generator(np.random.MT19937(5)))
        model.tracing.location_counts = {'school-2': 1}
        with pytest.raises(ValueError, match="PCG64"):
            load_checkpoint(tmp_path / 'state.npz', model)
        assert model.tracing.location_counts == {'school-2': 1}
