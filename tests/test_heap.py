import random

import pytest

from minikv.heap import IndexedHeap


def drain(heap):
    out = []
    while len(heap):
        key, value = heap.peek()
        assert heap.remove(key) == value
        out.append((value, key))
    return out


def test_peek_empty_raises():
    with pytest.raises(IndexError):
        IndexedHeap().peek()


def test_peek_returns_minimum():
    heap = IndexedHeap()
    for key, value in [("a", 30), ("b", 10), ("c", 20)]:
        heap.upsert(key, value)
    assert heap.peek() == ("b", 10)
    assert len(heap) == 3


def test_drain_is_sorted():
    rng = random.Random(3)
    heap = IndexedHeap()
    values = {i: rng.randrange(1000) for i in range(300)}
    for key, value in values.items():
        heap.upsert(key, value)
    drained = drain(heap)
    assert [v for v, _ in drained] == sorted(values.values())
    assert {k: v for v, k in drained} == values


def test_upsert_updates_existing_key():
    heap = IndexedHeap()
    heap.upsert("x", 5)
    heap.upsert("y", 7)
    heap.upsert("y", 1)
    assert heap.peek() == ("y", 1)
    heap.upsert("y", 9)
    assert heap.peek() == ("x", 5)
    assert heap.get("y") == 9
    assert len(heap) == 2


def test_remove_arbitrary_key():
    heap = IndexedHeap()
    for i in range(20):
        heap.upsert(i, 100 - i)
    assert heap.remove(7) == 93
    assert 7 not in heap
    assert 8 in heap
    assert [k for _, k in drain(heap)] == [i for i in reversed(range(20)) if i != 7]


def test_missing_key_errors():
    heap = IndexedHeap()
    with pytest.raises(KeyError):
        heap.get("nope")
    with pytest.raises(KeyError):
        heap.remove("nope")


def test_random_operations_match_model():
    rng = random.Random(11)
    heap = IndexedHeap()
    model = {}
    for _ in range(2000):
        key = rng.randrange(60)
        # Removals keep at least one entry so the heap is never empty here.
        if key in model and len(model) > 1 and rng.random() < 0.4:
            assert heap.remove(key) == model.pop(key)
        else:
            value = rng.randrange(500)
            heap.upsert(key, value)
            model[key] = value
        assert len(heap) == len(model)
        _, top = heap.peek()
        assert top == min(model.values())
    assert {key: heap.get(key) for key in model} == model