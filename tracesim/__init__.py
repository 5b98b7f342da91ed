"""tracesim: Disease progression and contact-tracing engine for agent-based epidemics.

An individual-level model coupling:
  - A stochastic per-agent disease progression state machine driven by
    configurable dwell-time distributions (log-normal by default)
  - Resource-constrained contact tracing with daily capacity, success
    probability and household short-circuits
  - Location-outbreak tracing that quarantines everyone linked to a
    facility once its symptomatic-onset count crosses a threshold
  - Checkpointing of outbreak-detection state, RNG state and agents
"""

__version__ = "0.1.0"
