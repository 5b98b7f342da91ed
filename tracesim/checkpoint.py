"""Checkpoint save/restore.

A checkpoint is one compressed .npz file:

    format_version      ()      int32
    day                 ()      int32   last completed simulated day
    location_ids        (L,)    str     location-outbreak counters ...
    location_counts     (L,)    int64   ... in insertion order
    rng_state           ()      str     JSON of the bit-generator state

and, when a population is given, per-agent columns (in population order):

    agent_ids, household_ids / has_household, disease_status, next_state
    (-1 = none), next_transition_day, quarantine_status, quarantine_day,
    infection_locations / has_infection_location,
    history_offsets (N+1,), history_status, history_day      (ragged)
    contact_offsets (N+1,), contact_ids, contact_times        (ragged)

Restoring agents requires a population holding the same agent ids; contacts
are re-linked by id. No pickled objects are stored.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np

from tracesim.model import TracingModel
from tracesim.population import Population
from tracesim.rng import check_rng_state
from tracesim.types import DiseaseStatus, QuarantineStatus

FORMAT_VERSION = 1


def _str_array(values: List[str]) -> np.ndarray:
    return np.array(values, dtype=str) if values else np.zeros(0, dtype='<U1')


def _offsets(lengths: List[int]) -> np.ndarray:
    return np.concatenate([[0], np.cumsum(lengths, dtype=np.int64)]).astype(np.int64)


def _agent_arrays(population: Population) -> Dict[str, np.ndarray]:
    agents = list(population)
    history = [a.history for a in agents]
    contacts = [list(a.contacts.items()) for a in agents]
    return {
        'agent_ids': _str_array([a.agent_id for a in agents]),
        'household_ids': _str_array([a.household_id or '' for a in agents]),
        'has_household': np.array([a.household_id is not None for a in agents], dtype=bool),
        'disease_status': np.array([a.disease_status for a in agents], dtype=np.int8),
        'next_state': np.array(
            [-1 if a.next_state is None else int(a.next_state) for a in agents], dtype=np.int8
        ),
        'next_transition_day': np.array([a.next_transition_day for a in agents], dtype=np.int32),
        'quarantine_status': np.array([a.quarantine_status for a in agents], dtype=np.int8),
        'quarantine_day': np.array([a.quarantine_day for a in agents], dtype=np.int32),
        'infection_locations': _str_array([a.infection_location or '' for a in agents]),
        'has_infection_location': np.array(
            [a.infection_location is not None for a in agents], dtype=bool
        ),
        'history_offsets': _offsets([len(h) for h in history]),
        'history_status': np.array([s for h in history for s, _ in h], dtype=np.int8),
        'history_day': np.array([d for h in history for _, d in h], dtype=np.int32),
        'contact_offsets': _offsets([len(c) for c in contacts]),
        'contact_ids': _str_array([cid for c in contacts for cid, _ in c]),
        'contact_times': np.array([t for c in contacts for _, (_, t) in c], dtype=np.float64),
    }


def save_checkpoint(
    path: Union[str, Path],
    model: TracingModel,
    population: Optional[Population] = None,
    day: int = 0,
) -> None:
    """Write model state (and optionally all agents) after simulated `day`."""
    state = model.state_dict()
    counts = state['tracing']['location_counts']
    arrays = {
        'format_version': np.array(FORMAT_VERSION, dtype=np.int32),
        'day': np.array(day, dtype=np.int32),
        'location_ids': _str_array(list(counts.keys())),
        'location_counts': np.array(list(counts.values()), dtype=np.int64),
        'rng_state': np.array(json.dumps(state['rng'])),
    }
    if population is not None:
        arrays.update(_agent_arrays(population))

    Path(path).parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(path, **arrays)


def _check_agent_ids(data, population: Population) -> None:
    """Every stored agent and contact id must be in `population`."""
    ids = {str(x) for x in data['agent_ids']} | {str(x) for x in data['contact_ids']}
    missing = sorted(i for i in ids if i not in population)
    if missing:
        raise KeyError(f"Checkpoint agents not in population: {missing[:5]}")


def _restore_agents(data, population: Population) -> None:
    ids = [str(x) for x in data['agent_ids']]
    h_off, c_off = data['history_offsets'], data['contact_offsets']
    h_status, h_day = data['history_status'], data['history_day']
    c_ids, c_times = data['contact_ids'], data['contact_times']

    for i, agent_id in enumerate(ids):
        agent = population[agent_id]
        agent.household_id = str(data['household_ids'][i]) if data['has_household'][i] else None
        agent.disease_status = DiseaseStatus(int(data['disease_status'][i]))
        nxt = int(data['next_state'][i])
        agent.next_state = None if nxt < 0 else DiseaseStatus(nxt)
        agent.next_transition_day = int(data['next_transition_day'][i])
        agent.quarantine_status = QuarantineStatus(int(data['quarantine_status'][i]))
        agent.quarantine_day = int(data['quarantine_day'][i])
        agent.infection_location = (
            str(data['infection_locations'][i]) if data['has_infection_location'][i] else None
        )
        agent.history = [
            (DiseaseStatus(int(s)), int(d))
            for s, d in zip(h_status[h_off[i]:h_off[i + 1]], h_day[h_off[i]:h_off[i + 1]])
        ]
        agent.contacts = {}
        for cid, t in zip(c_ids[c_off[i]:c_off[i + 1]], c_times[c_off[i]:c_off[i + 1]]):
            cid = str(cid)
            agent.contacts[cid] = (population[cid], float(t))


def load_checkpoint(
    path: Union[str, Path],
    model: TracingModel,
    population: Optional[Population] = None,
) -> int:
    """Restore state written by save_checkpoint() into `model` (and `population`).

    Everything is validated before anything is restored, so on error the
    model and population are left untouched.

    Returns:
        The simulated day the checkpoint was taken after.

    Raises:
        ValueError: Unknown format version, foreign RNG state, or agents
            requested but not stored.
        KeyError: A stored agent or contact id is not in `population`.
    """
    with np.load(path, allow_pickle=False) as data:
        version = int(data['format_version'])
        if version != FORMAT_VERSION:
            raise ValueError(f"Unsupported checkpoint format version {version}")

        ids = [str(x) for x in data['location_ids']]
        counts = [int(x) for x in data['location_counts']]
        rng_state = json.loads(data['rng_state'].item())
        check_rng_state(model.rng, rng_state)
        if population is not None:
            if 'agent_ids' not in data.files:
                raise ValueError(f"Checkpoint {path} holds no agent records")
            _check_agent_ids(data, population)

        # Nothing is modified until every check above has passed
        model.load_state_dict({
            'tracing': {'location_counts': dict(zip(ids, counts))},
            'rng': rng_state,
        })
        if population is not None:
            _restore_agents(data, population)

        return int(data['day'])
