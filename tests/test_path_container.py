import random

import pytest

from sharedcache.data.path_container import PathContainer


@pytest.fixture
def container():
    return PathContainer(length=2)


def test_has_on_missing_prefix_is_false(container):
    assert not container.has(("x", "w1"))
    assert not container.has(("x",))
    # Lookups must not create anything.
    assert not container


def test_add_and_has(container):
    container.add(("x", "w1"), "waiter")
    assert container.has(("x",))
    assert container.has(("x", "w1"))
    assert not container.has(("x", "w2"))
    assert not container.has(("y", "w1"))
    assert container.get(("x", "w1")) == {"waiter"}


def test_get_is_identity_stable(container):
    first = container.get(("x", "w1"))
    second = container.get(("x", "w1"))
    assert first is second
    assert container.get(("x",)) is container.get(("x",))


def test_get_creates_missing_nodes(container):
    leaf = container.get(("x", "w1"))
    assert leaf == set()
    assert container.has(("x", "w1"))


def test_delete_last_member_prunes_whole_branch(container):
    container.add(("x", "w1"), "a")
    container.delete(("x", "w1"), "a")
    assert not container.has(("x", "w1"))
    assert not container.has(("x",))
    assert not container


def test_delete_keeps_remaining_members(container):
    container.add(("x", "w1"), "a")
    container.add(("x", "w1"), "b")
    container.delete(("x", "w1"), "a")
    assert container.get(("x", "w1")) == {"b"}


def test_clear_keeps_sibling_branches(container):
    container.add(("x", "w1"), "a")
    container.add(("x", "w2"), "b")
    container.clear(("x", "w1"))
    assert not container.has(("x", "w1"))
    assert container.has(("x", "w2"))
    assert container.has(("x",))


def test_clear_prunes_nodes_created_by_get(container):
    container.get(("x", "w1"))
    container.clear(("x", "w1"))
    assert not container


def test_delete_and_clear_on_missing_path_are_noops(container):
    container.add(("x", "w1"), "a")
    container.delete(("y", "w1"), "a")
    container.delete(("x", "w2"), "a")
    container.clear(("z", "w9"))
    assert container.get(("x", "w1")) == {"a"}


def test_delete_of_absent_member(container):
    container.add(("x", "w1"), "a")
    container.delete(("x", "w1"), "missing")
    assert container.has(("x", "w1"))


def test_path_longer_than_depth_is_rejected(container):
    with pytest.raises(ValueError):
        container.has(("x", "w1", "extra"))
    with pytest.raises(ValueError):
        container.add(("x",), "a")


def test_mutations_need_a_full_path(container):
    container.add(("x", "w1"), "a")
    with pytest.raises(ValueError, match="delete"):
        container.delete(("x",), "a")
    with pytest.raises(ValueError, match="clear"):
        container.clear(("x",))
    with pytest.raises(ValueError):
        container.clear(())
    assert container.get(("x", "w1")) == {"a"}


def test_deeper_container_prunes_inside_out():
    container = PathContainer(length=3)
    container.add(("a", "b", "c"), 1)
    container.add(("a", "d", "e"), 2)
    container.delete(("a", "b", "c"), 1)
    assert not container.has(("a", "b"))
    assert container.has(("a", "d", "e"))
    container.clear(("a", "d", "e"))
    assert not container.has(("a",))
    assert not container


def test_random_mutations_never_leave_empty_branches(container):
    """
    Applies a random mix of add/delete/clear and checks that the container
    retains exactly the non-empty paths of a reference model.
    """
    rng = random.Random(1234)
    keys = ["k1", "k2", "k3"]
    writers = ["w1", "w2"]
    members = [1, 2, 3]
    model = {}

    for _ in range(500):
        path = (rng.choice(keys), rng.choice(writers))
        op = rng.choice(["add", "add", "delete", "clear"])
        if op == "add":
            member = rng.choice(members)
            container.add(path, member)
            model.setdefault(path, set()).add(member)
        elif op == "delete":
            member = rng.choice(members)
            container.delete(path, member)
            model.get(path, set()).discard(member)
        else:
            container.clear(path)
            model.pop(path, None)

        for key in keys:
            any_members = False
            for writer in writers:
                expected = model.get((key, writer), set())
                assert container.has((key, writer)) == bool(expected)
                any_members = any_members or bool(expected)
            assert container.has((key,)) == any_members
