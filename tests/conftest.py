"""Shared fixtures for tracesim tests."""

import pytest


class NoDrawRng:
    """Random source that fails the test on any draw."""

    def __getattr__(self, name):
        raise AssertionError(f"unexpected random draw: rng.{name}")


class ScriptedRng:
    """Returns queued values from random(); records every call."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = []

    def random(self):
        self.calls.append('random')
        return self.values.pop(0)


def _fixed(to, days, **extra):
    return dict({'to': to, 'distribution': 'fixed', 'days': days}, **extra)


# Every edge has a fixed dwell, so progression only draws for branch choices
FIXED_TRANSITIONS = {
    'infected_but_not_contagious': _fixed('contagious', 2),
    'contagious': [_fixed('showing_symptoms', 1), _fixed('recovered', 3)],
    'showing_symptoms': [_fixed('seriously_sick', 2), _fixed('recovered', 5)],
    'seriously_sick': [_fixed('critical', 1), _fixed('recovered', 4)],
    'critical': _fixed('seriously_sick', 3),
}


@pytest.fixture
def no_draw_rng():
    return NoDrawRng()


@pytest.fixture
def scripted_rng():
    return ScriptedRng


@pytest.fixture
def fixed_transitions():
    return {k: list(v) if isinstance(v, list) else dict(v) for k, v in FIXED_TRANSITIONS.items()}
