import pytest

from minikv.hashtable import HMap, str_hash


def test_hash_of_empty_is_offset_basis():
    assert str_hash(b"") == 0x811C9DC5


def test_hash_is_32_bit_and_deterministic():
    for data in (b"a", b"hello", bytes(range(256))):
        h = str_hash(data)
        assert 0 <= h < 2**32
        assert h == str_hash(bytes(data))
    assert str_hash(b"a") != str_hash(b"b")


def test_insert_lookup_and_len():
    m = HMap()
    m.insert(b"k1", 1)
    m.insert(b"k2", 2)
    assert m.lookup(b"k1") == 1
    assert m.lookup(b"k2") == 2
    assert len(m) == 2


def test_lookup_missing_returns_none():
    m = HMap()
    assert m.lookup(b"nope") is None
    m.insert(b"x", 1)
    assert m.lookup(b"nope") is None


def test_insert_replaces_existing_value():
    m = HMap()
    m.insert(b"k", "old")
    m.insert(b"k", "new")
    assert m.lookup(b"k") == "new"
    assert len(m) == 1


@pytest.mark.parametrize("n", [31, 32, 33, 500, 3000])
def test_many_keys_survive_rehashing(n):
    m = HMap()
    keys = [f"key{i}".encode() for i in range(n)]
    for i, key in enumerate(keys):
        m.insert(key, i)
        assert len(m) == i + 1
        assert m.lookup(keys[i // 2]) == i // 2
    assert sorted(m) == sorted(keys)
    assert all(m.lookup(k) == i for i, k in enumerate(keys))


def test_pop_returns_value_and_removes():
    m = HMap()
    m.insert(b"a", 10)
    m.insert(b"b", 20)
    assert m.pop(b"a") == 10
    assert m.lookup(b"a") is None
    assert b"a" not in m
    assert len(m) == 1
    assert m.pop(b"a") is None


def test_pop_everything_while_rehashing():
    m = HMap()
    keys = [str(i).encode() for i in range(200)]
    for i, key in enumerate(keys):
        m.insert(key, i)
    for i, key in enumerate(keys):
        assert m.pop(key) == i
    assert len(m) == 0
    assert list(m) == []


def test_clear_empties_map():
    m = HMap()
    for i in range(50):
        m.insert(str(i).encode(), i)
    m.clear()
    assert len(m) == 0
    assert m.lookup(b"1") is None
    m.insert(b"1", "again")
    assert m.lookup(b"1") == "again"


def test_items_and_contains():
    m = HMap()
    data = {f"n{i}".encode(): i * i for i in range(100)}
    for k, v in data.items():
        m.insert(k, v)
    assert dict(m.items()) == data
    assert b"n5" in m
    assert b"missing" not in m
    assert "n5" not in m