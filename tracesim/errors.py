"""Exception types for tracesim.

  - ConfigurationError: invalid input detected while building; the run must not start
  - MissingTransition:  lookup of an edge absent from a TransitionTable
  - ProgressionError:   progression graph and transition table out of sync at run time
"""


class ConfigurationError(ValueError):
    """Malformed or incomplete configuration, raised at build time."""


class MissingTransition(LookupError):
    """No transition defined for a (from, to) edge."""

    def __init__(self, from_state, to_state):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"No transition from {from_state.name} to {to_state.name} defined")


class ProgressionError(RuntimeError):
    """Unrecoverable logic error during disease progression."""
