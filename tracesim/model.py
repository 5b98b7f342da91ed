"""Progression + tracing model — the hooks the day-by-day driver calls.

Per simulated day, in this order:
  1. set_iteration(day)                  refresh capacity / probability / schedules
  2. before_state_updates(agents, day)   location-outbreak tracing (yesterday's counts)
  3. update_state(agent, day)            for every agent, in population order:
       a. scheduled health transition (fires quarantine + tracing subscribers)
       b. auto-release of healthy quarantined agents
       c. delayed tracing, pruning of stale contacts

step() runs all three for one day. Exposure events and infections are
fed in by the driver between days (Population.apply_exposures).

All randomness comes from the single generator `model.rng`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

import numpy as np

from tracesim.config import SimulationConfig, default_config
from tracesim.progression import ProgressionEngine, SeverityPolicy
from tracesim.quarantine import QuarantinePolicy
from tracesim.rng import create_rng, restore_rng_state, rng_state_snapshot
from tracesim.tracing import ContactTracingEngine
from tracesim.transitions import TransitionTable, build_table, default_table
from tracesim.types import Agent
from tracesim.utils import start_offset

logger = logging.getLogger(__name__)


def build_transition_table(config: SimulationConfig) -> TransitionTable:
    """Configured transition table, or the default when none is configured."""
    if config.progression.transitions is None:
        logger.info("Using default disease progression")
        table = default_table()
    else:
        table = build_table(config.progression.transitions)
    logger.info("Using disease progression config:\n%s", table.describe())
    return table


class TracingModel:
    """Wires progression, quarantine and tracing around one random source.

    Args:
        config: Validated configuration; default_config() when None.
        rng: Random source; seeded from config.simulation.seed when None.
        table: Transition table; built from the config when None.
        policy: Severity policy; built from the config when None.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        rng: Optional[np.random.Generator] = None,
        table: Optional[TransitionTable] = None,
        policy: Optional[SeverityPolicy] = None,
    ):
        self.config = config if config is not None else default_config()
        sim = self.config.simulation

        self.rng = rng if rng is not None else create_rng(sim.seed)
        self.table = table if table is not None else build_transition_table(self.config)
        self.time_offset = start_offset(sim.start_date)

        self.quarantine = QuarantinePolicy(self.config.progression.quarantine_release_days)
        self.tracing = ContactTracingEngine(
            self.config.tracing,
            self.quarantine,
            self.rng,
            start_date=sim.start_date,
            sample_size=sim.sample_size,
            time_offset=self.time_offset,
        )
        # Quarantine first: an index case is in FULL quarantine before tracing runs
        self.progression = ProgressionEngine(
            self.table,
            self.rng,
            policy=policy if policy is not None else SeverityPolicy.from_config(self.config.progression),
            subscribers=[self.quarantine.on_transition, self.tracing.on_transition],
            time_offset=self.time_offset,
        )

    # ── Driver hooks ──────────────────────────────────────────────────

    def set_iteration(self, day: int) -> None:
        self.tracing.set_iteration(day)

    def before_state_updates(self, agents: Iterable[Agent], day: int) -> None:
        self.tracing.before_state_updates(agents, day)

    def update_state(self, agent: Agent, day: int) -> None:
        self.progression.update_state(agent, day)
        self.quarantine.maybe_release(agent, day)
        self.tracing.after_update(agent, day)

    def infect(self, agent: Agent, day: int, location_id: Optional[str] = None) -> None:
        self.progression.infect(agent, day, location_id)

    def step(self, agents: Iterable[Agent], day: int) -> None:
        """Run all daily hooks for `day` over `agents` (a stable order)."""
        agents = list(agents)
        self.set_iteration(day)
        self.before_state_updates(agents, day)
        for agent in agents:
            self.update_state(agent, day)

    # ── Checkpointing ─────────────────────────────────────────────────

    def state_dict(self) -> Dict[str, Any]:
        """Model state needed to resume: location counters and RNG state."""
        return {
            'tracing': self.tracing.state_dict(),
            'rng': rng_state_snapshot(self.rng),
        }

    def load_state_dict(self, state: Dict[str, Any]) -> None:
        self.tracing.load_state_dict(state['tracing'])
        if 'rng' in state:
            restore_rng_state(self.rng, state['rng'])
