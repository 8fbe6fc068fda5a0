import random

import pytest

from minikv.zset import ZSet


def walk(zset):
    out = []
    node = zset.seek_ge(float("-inf"), b"")
    while node is not None:
        out.append((node.score, node.name))
        node = node.offset(1)
    return out


def test_insert_then_update():
    zs = ZSet()
    assert zs.insert(b"alice", 1.5) is True
    assert zs.insert(b"alice", 3.0) is False
    assert zs.lookup(b"alice").score == 3.0
    assert len(zs) == 1


def test_lookup_missing():
    zs = ZSet()
    assert zs.lookup(b"x") is None
    zs.insert(b"y", 1)
    assert zs.lookup(b"x") is None


def test_order_by_score_then_name():
    zs = ZSet()
    members = [(b"b", 1.0), (b"ab", 1.0), (b"a", 1.0), (b"z", 0.5), (b"c", 2.0)]
    for name, score in members:
        zs.insert(name, score)
    assert walk(zs) == sorted((s, n) for n, s in members)


def test_update_moves_member():
    zs = ZSet()
    for i in range(10):
        zs.insert(str(i).encode(), float(i))
    zs.insert(b"0", 100.0)
    order = walk(zs)
    assert order[-1] == (100.0, b"0")
    assert order == sorted(order)
    assert len(order) == 10


def test_seek_ge():
    zs = ZSet()
    for i in range(0, 20, 2):
        zs.insert(f"m{i:02d}".encode(), float(i))
    node = zs.seek_ge(5.0, b"")
    assert (node.score, node.name) == (6.0, b"m06")
    node = zs.seek_ge(6.0, b"m06")
    assert node.name == b"m06"
    assert zs.seek_ge(100.0, b"") is None
    assert ZSet().seek_ge(0.0, b"") is None


def test_offset_both_directions():
    zs = ZSet()
    for i in range(30):
        zs.insert(f"k{i:02d}".encode(), float(i))
    start = zs.seek_ge(10.0, b"")
    assert start.offset(5).name == b"k15"
    assert start.offset(-10).name == b"k00"
    assert start.offset(-11) is None
    assert start.offset(19).name == b"k29"
    assert start.offset(20) is None


def test_delete():
    zs = ZSet()
    for name in (b"a", b"b", b"c"):
        zs.insert(name, 1.0)
    zs.delete(zs.lookup(b"b"))
    assert zs.lookup(b"b") is None
    assert len(zs) == 2
    assert walk(zs) == [(1.0, b"a"), (1.0, b"c")]


def test_delete_foreign_node_raises():
    first = ZSet()
    second = ZSet()
    first.insert(b"a", 1.0)
    second.insert(b"a", 1.0)
    with pytest.raises(ValueError):
        second.delete(first.lookup(b"a"))
    assert len(second) == 1


def test_clear():
    zs = ZSet()
    for i in range(5):
        zs.insert(str(i).encode(), i)
    zs.clear()
    assert len(zs) == 0
    assert walk(zs) == []
    assert zs.insert(b"0", 1.0) is True


def test_random_operations_match_model():
    rng = random.Random(5)
    zs = ZSet()
    model = {}
    for _ in range(1500):
        name = f"n{rng.randrange(80)}".encode()
        if name in model and rng.random() < 0.3:
            zs.delete(zs.lookup(name))
            del model[name]
        else:
            score = float(rng.randrange(40))
            assert zs.insert(name, score) is (name not in model)
            model[name] = score
    assert len(zs) == len(model)
    assert walk(zs) == sorted((s, n) for n, s in model.items())