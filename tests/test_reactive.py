"""Tests for signals and effects."""

import pytest

from handlerkit.reactive import (
    ObserverStack,
    ReactiveDomain,
    Signal,
    create_effect,
    create_signal,
)


def _make_domain():
    return ReactiveDomain(ObserverStack())


def test_effect_reruns_once_per_write():
    domain = _make_domain()
    read, write, _ = domain.create_signal(1)
    seen = []
    domain.create_effect(lambda: seen.append(read()))

    write(2)
    write(3)
    assert seen == [1, 2, 3]


def test_updater_and_factory_initial():
    domain = _make_domain()
    read, write, _ = domain.create_signal(lambda: 10)
    assert read() == 10
    write(lambda previous: previous + 5)
    assert read() == 15


def test_dispose_makes_signal_inert():
    domain = _make_domain()
    read, write, dispose = domain.create_signal("a")
    seen = []
    domain.create_effect(lambda: seen.append(read()))

    dispose()
    write("b")
    assert seen == ["a"]
    assert read() == "a"


def test_read_outside_effect_does_not_subscribe():
    stack = ObserverStack()
    signal = Signal(0, stack)
    assert signal.read() == 0
    assert signal.subscriber_count == 0

    effect = ReactiveDomain(stack).create_effect(signal.read)
    assert signal.subscriber_count == 1
    signal.read()
    signal.write(1)
    assert signal.subscriber_count == 1
    assert effect.runs == 2


def test_stack_restored_when_body_raises():
    domain = _make_domain()

    def body():
        raise ValueError("bad")

    with pytest.raises(ValueError):
        domain.create_effect(body)
    assert domain.stack.current is None


def test_nested_effects_track_innermost():
    domain = _make_domain()
    read_outer, write_outer, _ = domain.create_signal(0)
    read_inner, write_inner, _ = domain.create_signal(0)
    runs = {"outer": 0, "inner": 0}

    def inner():
        runs["inner"] += 1
        read_inner()

    def outer():
        runs["outer"] += 1
        read_outer()
        domain.create_effect(inner)

    domain.create_effect(outer)
    write_inner(1)
    assert runs == {"outer": 1, "inner": 2}


def test_effect_counts_runs():
    domain = _make_domain()
    read, write, _ = domain.create_signal(0)
    effect = domain.create_effect(lambda: read())
    write(1)
    assert effect.runs == 2


def test_separate_stacks_do_not_share_observers():
    first, second = _make_domain(), _make_domain()
    read, write, _ = first.create_signal(0)
    seen = []
    second.create_effect(lambda: seen.append(read()))
    write(1)
    assert seen == [0]


def test_module_level_functions():
    stack = ObserverStack()
    read, write, _ = create_signal(0, stack=stack)
    seen = []
    create_effect(lambda: seen.append(read()), stack=stack)
    write(7)
    assert seen == [0, 7]
