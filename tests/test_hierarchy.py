"""
Voxel keys, hierarchy entries and pages
"""
import io
import itertools
import struct

import pytest

from copcfun.errors import InvalidPageSize, TruncatedRecord
from copcfun.hierarchy import ENTRY_SIZE, ROOT_KEY, Entry, Page, VoxelKey


@pytest.mark.parametrize('key', [
    VoxelKey(0, 0, 0, 0),
    VoxelKey(3, 5, 2, 7),
    VoxelKey(10, 1023, 0, 512),
])
def test_child_derivation(key):
    for dx, dy, dz in itertools.product((0, 1), repeat=3):
        child = key.child(dx, dy, dz)
        assert child.level == key.level + 1
        assert (child.x, child.y, child.z) == (2 * key.x + dx, 2 * key.y + dy, 2 * key.z + dz)
        assert child.parent() == key
        assert key.is_ancestor_of(child)


def test_children_are_the_eight_octants():
    children = list(VoxelKey(2, 1, 1, 1).children())

    assert len(set(children)) == 8
    assert VoxelKey(3, 2, 2, 2) in children
    assert VoxelKey(3, 3, 3, 3) in children


def test_invalid_key():
    assert not VoxelKey().is_valid()
    assert not VoxelKey(-1, 4, 4, 4).is_valid()
    assert ROOT_KEY.is_valid()
    assert not ROOT_KEY.parent().is_valid()


def test_ancestry():
    deep = VoxelKey(4, 9, 3, 15)

    assert ROOT_KEY.is_ancestor_of(deep)
    assert VoxelKey(2, 2, 0, 3).is_ancestor_of(deep)
    assert not VoxelKey(2, 2, 1, 3).is_ancestor_of(deep)
    assert not deep.is_ancestor_of(deep)
    assert not VoxelKey().is_ancestor_of(deep)


def test_keys_are_lookup_values():
    index = {VoxelKey(1, 0, 1, 0): 'a'}

    assert index[VoxelKey(1, 0, 1, 0)] == 'a'
    assert VoxelKey(1, 0, 1, 1) not in index
    assert VoxelKey(1, 0, 1, 0) != (1, 0, 1, 0)


def test_key_from_string():
    assert VoxelKey.from_string('2/1/0/3') == VoxelKey(2, 1, 0, 3)
    assert str(VoxelKey(2, 1, 0, 3)) == '2/1/0/3'

    with pytest.raises(ValueError):
        VoxelKey.from_string('2/1/0')

    with pytest.raises(ValueError):
        VoxelKey.from_string('a/b/c/d')


def test_key_bounds():
    root = [0., 8., 10., 18., -4., 4.]

    assert ROOT_KEY.bounds(root) == root
    assert VoxelKey(1, 1, 0, 1).bounds(root) == [4., 8., 10., 14., 0., 4.]
    assert VoxelKey(2, 3, 3, 0).bounds(root) == [6., 8., 16., 18., -4., -2.]


def test_entry_field_order():
    raw = struct.pack('<iiiiQii', 2, 1, 0, 3, 123456789012, 4096, -1)
    entry = Entry.from_bytes(raw)

    assert entry.key == VoxelKey(2, 1, 0, 3)
    assert entry.offset == 123456789012
    assert entry.byte_size == 4096
    assert entry.point_count == -1
    assert entry.is_pointer
    assert not entry.is_data
    assert entry.to_bytes() == raw


def test_entry_kinds():
    assert Entry(ROOT_KEY, 10, 20, 0).is_data
    assert Entry(ROOT_KEY, 10, 20, 61074).is_data
    assert not Entry(ROOT_KEY, 10, 20, -2).is_data
    assert not Entry(ROOT_KEY, 10, 20, -2).is_pointer


def test_truncated_entry():
    with pytest.raises(TruncatedRecord) as exc:
        Entry.from_bytes(b'\x00' * 31)

    assert exc.value.wanted == 32
    assert exc.value.got == 31

    with pytest.raises(TruncatedRecord):
        Entry.read_from(io.BytesIO(b'\x00' * 16))


def test_page_size_matches_entry_count():
    entries = [Entry(VoxelKey(1, x, 0, 0), 100 * x, 10, x) for x in range(2)] + \
        [Entry(VoxelKey(2, 3, 3, 3), 5000, 64, -1)]
    raw = Page(entries).to_bytes()
    page = Page.from_bytes(raw, len(raw))

    assert len(raw) == ENTRY_SIZE * 3
    assert page.page_size == len(raw)
    assert len(page) == 3
    assert page.entries == entries


def test_page_decodes_only_page_size_bytes():
    raw = Page([Entry(ROOT_KEY, 1, 2, 3), Entry(VoxelKey(1, 1, 1, 1), 4, 5, 6)]).to_bytes()
    page = Page.from_bytes(raw, 32)

    assert len(page) == 1
    assert page.entries[0] == Entry(ROOT_KEY, 1, 2, 3)


def test_empty_page():
    assert len(Page.from_bytes(b'', 0)) == 0


@pytest.mark.parametrize('size', [1, 31, 33, 48, -32])
def test_invalid_page_size(size):
    with pytest.raises(InvalidPageSize):
        Page.from_bytes(b'\x00' * 64, size)


def test_truncated_page():
    raw = Page([Entry(ROOT_KEY, 1, 2, 3)]).to_bytes()

    with pytest.raises(TruncatedRecord):
        Page.from_bytes(raw, 64)

    with pytest.raises(TruncatedRecord):
        Page.read_from(io.BytesIO(raw[:20]), 32)
