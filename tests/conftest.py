"""
Pytest configuration and fixtures
Builds hierarchy pages and COPC info records in memory
"""
import pytest

from copcfun.copcinfo import CopcInfo
from copcfun.hierarchy import Entry, Page, VoxelKey


class CountingFetcher:
    """page fetcher over a dict of {offset: bytes}, counting every call"""

    def __init__(self, ranges):
        self.ranges = dict(ranges)
        self.calls = []

    def __call__(self, offset, size):
        self.calls.append((offset, size))
        if offset not in self.ranges:
            raise OSError(f'nothing at offset {offset}')

        return self.ranges[offset][:size]


def data_entry(level, x, y, z, offset, byte_size, point_count):
    return Entry(VoxelKey(level, x, y, z), offset, byte_size, point_count)


def pointer_entry(level, x, y, z, offset, byte_size):
    return Entry(VoxelKey(level, x, y, z), offset, byte_size, -1)


def page_bytes(*entries):
    return Page(entries).to_bytes()


@pytest.fixture
def make_info():
    def _make(root_offset, root_size, **kwargs):
        return CopcInfo(span=256, root_hier_offset=root_offset,
                        root_hier_size=root_size, **kwargs)
    return _make


@pytest.fixture
def scenario():
    """the two-page hierarchy: root at 500 (2 entries), child page at 2000"""
    root = page_bytes(
        data_entry(0, 0, 0, 0, 1000, 200, 5),
        pointer_entry(1, 0, 0, 0, 2000, 32),
    )
    child = page_bytes(
        data_entry(1, 0, 0, 0, 3000, 120, 3),
    )
    fetcher = CountingFetcher({500: root, 2000: child})
    info = CopcInfo(span=256, root_hier_offset=500, root_hier_size=len(root))
    return root, info, fetcher
