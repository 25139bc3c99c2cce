### hierarchy.py - COPC octree hierarchy
##
## Copyright (c) 2010 - 2025 Regents of the University of Colorado
##
## hierarchy.py is part of COPCFUN
##
## Permission is hereby granted, free of charge, to any person obtaining a copy
## of this software and associated documentation files (the "Software"), to deal
## in the Software without restriction, including without limitation the rights
## to use, copy, modify, merge, publish, distribute, sublicense, and/or sell copies
## of the Software, and to permit persons to whom the Software is furnished to do so,
## subject to the following conditions:
##
## The above copyright notice and this permission notice shall be included in all
## copies or substantial portions of the Software.
##
## THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED,
## INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY, FITNESS FOR A PARTICULAR
## PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE
## FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE,
## ARISING FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
## SOFTWARE.
##
### Commentary:
##
## The COPC hierarchy is a set of pages, each page a flat array of 32 byte
## entries. An entry maps a VoxelKey (level, x, y, z) either to a chunk of
## point data (point_count >= 0) or to another hierarchy page
## (point_count == -1).
##
## HierarchyResolver starts from the root page and loads further pages
## only when a lookup has to go through a pointer entry. Pages are cached by
## the (offset, size) byte range they were read from, so a page is never
## fetched twice, even when pages point at each other.
##
## HierarchyResolver is not thread-safe; serialize calls to `resolve` when
## sharing one instance between threads.
##
### Code:

import struct

from copcfun import utils
from copcfun.errors import (
    CorruptHierarchy, InvalidPageSize, KeyNotFound, PageFetchError, TruncatedRecord
)

ENTRY_SIZE = 32
POINTER_COUNT = -1

## (name, struct format) in file order
voxel_key_struct = (
    ('level', 'i'),
    ('x', 'i'),
    ('y', 'i'),
    ('z', 'i'),
)

entry_struct = (
    ('offset', 'Q'),
    ('byte_size', 'i'),
    ('point_count', 'i'),
)

_key_packer = struct.Struct('<' + ''.join(f[1] for f in voxel_key_struct))
_entry_packer = struct.Struct(
    '<' + ''.join(f[1] for f in voxel_key_struct + entry_struct)
)


class VoxelKey:
    """Address of an octree node

    A level < 0 is the invalid key, used as `no such node`.
    """

    __slots__ = ('level', 'x', 'y', 'z')

    def __init__(self, level=-1, x=0, y=0, z=0):
        self.level = int(level)
        self.x = int(x)
        self.y = int(y)
        self.z = int(z)


    @classmethod
    def from_bytes(cls, data, offset=0):
        if len(data) - offset < _key_packer.size:
            raise TruncatedRecord('voxel key', _key_packer.size, max(0, len(data) - offset))

        return(cls(*_key_packer.unpack_from(data, offset)))


    @classmethod
    def from_string(cls, key_str):
        """parse a `level/x/y/z` string, e.g. from the command line"""

        vals = [utils.int_or(k) for k in utils.str_or(key_str, '').split('/')]
        if len(vals) != 4 or None in vals:
            raise ValueError(f'invalid voxel key string: {key_str}')

        return(cls(*vals))


    def to_bytes(self):
        return(_key_packer.pack(self.level, self.x, self.y, self.z))


    def as_tuple(self):
        return((self.level, self.x, self.y, self.z))


    def __hash__(self):
        return(hash(self.as_tuple()))


    def __eq__(self, other):
        if not isinstance(other, VoxelKey):
            return(NotImplemented)

        return(self.as_tuple() == other.as_tuple())


    def __repr__(self):
        return(f'VoxelKey(level={self.level}, x={self.x}, y={self.y}, z={self.z})')


    def __str__(self):
        return('{}/{}/{}/{}'.format(*self.as_tuple()))


    def is_valid(self):
        return(self.level >= 0)


    def child(self, dx, dy, dz):
        """the child at octant (dx, dy, dz), each 0 or 1"""

        return(VoxelKey(
            self.level + 1,
            (self.x << 1) | (dx & 1),
            (self.y << 1) | (dy & 1),
            (self.z << 1) | (dz & 1)
        ))


    def children(self):
        for octant in range(8):
            yield(self.child(octant & 1, (octant >> 1) & 1, (octant >> 2) & 1))


    def parent(self):
        """the parent key; the root has no parent and gets the invalid key"""

        if self.level <= 0:
            return(VoxelKey())

        return(VoxelKey(self.level - 1, self.x >> 1, self.y >> 1, self.z >> 1))


    def is_ancestor_of(self, other):
        if not self.is_valid() or other.level <= self.level:
            return(False)

        d = other.level - self.level
        return(
            (other.x >> d) == self.x
            and (other.y >> d) == self.y
            and (other.z >> d) == self.z
        )


    def bounds(self, root_bounds):
        """the bounds of this node given the cubic bounds of the root node.

        Args:
          root_bounds (list): [xmin, xmax, ymin, ymax, zmin, zmax]

        Returns:
          list: [xmin, xmax, ymin, ymax, zmin, zmax] of this node
        """

        side = (root_bounds[1] - root_bounds[0]) / (2 ** self.level)
        xmin = root_bounds[0] + self.x * side
        ymin = root_bounds[2] + self.y * side
        zmin = root_bounds[4] + self.z * side
        return([xmin, xmin + side, ymin, ymin + side, zmin, zmin + side])


ROOT_KEY = VoxelKey(0, 0, 0, 0)


class Entry:
    """One row of a hierarchy page

    A data entry (point_count >= 0) locates a chunk of point_count points
    at offset/byte_size; a pointer entry (point_count == -1) locates
    another hierarchy page at offset/byte_size.
    """

    __slots__ = ('key', 'offset', 'byte_size', 'point_count')

    def __init__(self, key=None, offset=0, byte_size=0, point_count=0):
        self.key = VoxelKey() if key is None else key
        self.offset = offset
        self.byte_size = byte_size
        self.point_count = point_count


    @classmethod
    def from_bytes(cls, data, offset=0):
        avail = len(data) - offset
        if avail < ENTRY_SIZE:
            raise TruncatedRecord('hierarchy entry', ENTRY_SIZE, max(0, avail))

        level, x, y, z, e_offset, byte_size, point_count = _entry_packer.unpack_from(data, offset)
        return(cls(VoxelKey(level, x, y, z), e_offset, byte_size, point_count))


    @classmethod
    def read_from(cls, stream):
        return(cls.from_bytes(stream.read(ENTRY_SIZE)))


    def to_bytes(self):
        return(_entry_packer.pack(
            *self.key.as_tuple(), self.offset, self.byte_size, self.point_count
        ))


    @property
    def is_pointer(self):
        return(self.point_count == POINTER_COUNT)


    @property
    def is_data(self):
        return(self.point_count >= 0)


    @property
    def byte_range(self):
        return((self.offset, self.byte_size))


    def __eq__(self, other):
        if not isinstance(other, Entry):
            return(NotImplemented)

        return(
            self.key == other.key
            and self.offset == other.offset
            and self.byte_size == other.byte_size
            and self.point_count == other.point_count
        )


    def __repr__(self):
        return(
            f'Entry(key={self.key}, offset={self.offset}, '
            f'byte_size={self.byte_size}, point_count={self.point_count})'
        )


def check_page_size(page_size):
    if page_size < 0 or page_size % ENTRY_SIZE != 0:
        raise InvalidPageSize(page_size)

    return(page_size // ENTRY_SIZE)


class Page:
    """A hierarchy page, the entries in file order"""

    def __init__(self, entries=None):
        self.entries = [] if entries is None else list(entries)


    @property
    def page_size(self):
        return(len(self.entries) * ENTRY_SIZE)


    def __len__(self):
        return(len(self.entries))


    def __iter__(self):
        return(iter(self.entries))


    @classmethod
    def from_bytes(cls, data, page_size):
        """Decode `page_size` / 32 entries from `data`.

        Raises InvalidPageSize if page_size is not a multiple of 32 and
        TruncatedRecord if data holds fewer than page_size bytes.
        """

        num_entries = check_page_size(page_size)
        if len(data) < page_size:
            raise TruncatedRecord('hierarchy page', page_size, len(data))

        return(cls([Entry.from_bytes(data, i * ENTRY_SIZE) for i in range(num_entries)]))


    @classmethod
    def read_from(cls, stream, page_size):
        check_page_size(page_size)
        return(cls.from_bytes(stream.read(page_size), page_size))


    def to_bytes(self):
        return(b''.join(entry.to_bytes() for entry in self.entries))


class HierarchyResolver:
    """Resolve voxel keys to data entries, loading hierarchy pages lazily.

    Args:
      root_page_bytes (bytes): the root page, read by the caller from
                               info.root_hier_offset
      root_page_size (int): the size of the root page in bytes
      info (CopcInfo): the copc info record
      fetch_page (callable): fetch_page(offset, size) -> bytes, used to
                             read every page after the root
      verbose (bool): report page loads to stderr
    """

    def __init__(self, root_page_bytes, root_page_size, info, fetch_page=None,
                 verbose=False):
        self.info = info
        self.fetch_page = fetch_page
        self.verbose = verbose
        self.fetch_count = 0

        ## byte range -> Page
        self.pages = {}
        ## VoxelKey -> data Entry
        self.data = {}
        ## VoxelKey -> pointer Entry, not yet followed
        self.pointers = {}

        root_page = Page.from_bytes(root_page_bytes, root_page_size)
        self._merge(root_page, (info.root_hier_offset, root_page_size))


    @property
    def loaded_pages(self):
        return(list(self.pages.keys()))


    def data_entries(self):
        """yield the data entries of every page loaded so far"""

        for entry in list(self.data.values()):
            yield(entry)


    def resolve(self, key):
        """Return the data entry for exactly `key`.

        Pointer entries at `key` or at one of its ancestors are followed,
        deepest first, until a data entry for `key` turns up or no pointer
        can lead to it.

        Raises KeyNotFound if `key` is not in the reachable hierarchy.
        """

        while True:
            entry = self.data.get(key)
            if entry is not None:
                return(entry)

            pointer = self._pointer_toward(key)
            if pointer is None:
                raise KeyNotFound(key)

            self._follow(pointer)


    def load_all(self):
        """Follow every pending pointer entry, loading the whole reachable hierarchy."""

        while self.pointers:
            self._follow(next(iter(self.pointers.values())))


    def _pointer_toward(self, key):
        k = key
        while k.is_valid():
            pointer = self.pointers.get(k)
            if pointer is not None:
                return(pointer)

            k = k.parent()

        return(None)


    def _follow(self, pointer):
        byte_range = pointer.byte_range
        if byte_range in self.pages:
            ## already merged when it was first loaded
            del self.pointers[pointer.key]
            return

        page = self._load_page(*byte_range)
        del self.pointers[pointer.key]
        try:
            self._merge(page, byte_range)
        except CorruptHierarchy:
            self.pointers[pointer.key] = pointer
            raise


    def _load_page(self, offset, size):
        check_page_size(size)
        if self.fetch_page is None:
            raise PageFetchError(offset, size, 'no page fetcher available')

        try:
            page_bytes = self.fetch_page(offset, size)
        except PageFetchError:
            raise
        except OSError as e:
            raise PageFetchError(offset, size, e) from e

        self.fetch_count += 1
        page = Page.from_bytes(page_bytes, size)
        if self.verbose:
            utils.echo_msg(
                f'loaded hierarchy page at {offset} ({size} bytes, {len(page)} entries)'
            )

        return(page)


    def _merge(self, page, byte_range):
        """validate every entry of `page` against the index, then add them.

        Nothing is added when an entry is invalid, so a corrupt page leaves
        the already loaded state untouched.
        """

        seen = set()
        new_data = {}
        new_pointers = {}
        for entry in page:
            if not entry.key.is_valid():
                raise CorruptHierarchy(f'invalid key in hierarchy page at {byte_range}: {entry}')

            if entry.point_count < POINTER_COUNT:
                raise CorruptHierarchy(f'invalid point count in hierarchy page at {byte_range}: {entry}')

            if entry.key in seen:
                raise CorruptHierarchy(f'duplicate key {entry.key} in hierarchy page at {byte_range}')

            seen.add(entry.key)
            if entry.is_data:
                known = self.data.get(entry.key)
                if known is not None and known != entry:
                    raise CorruptHierarchy(
                        f'conflicting data entries for {entry.key}: {known} and {entry}'
                    )

                if entry.key in self.pointers:
                    raise CorruptHierarchy(
                        f'data entry {entry} for a key with a pending pointer {self.pointers[entry.key]}'
                    )

                new_data[entry.key] = entry
            else:
                pending = self.pointers.get(entry.key)
                if pending is not None and pending != entry:
                    raise CorruptHierarchy(
                        f'conflicting pointer entries for {entry.key}: {pending} and {entry}'
                    )

                ## a pointer back to a loaded page is dropped, anything else
                ## must not shadow a known data entry
                redundant = entry.byte_range in self.pages or entry.byte_range == byte_range
                if entry.key in self.data and not redundant:
                    raise CorruptHierarchy(
                        f'pointer entry {entry} for a key with data entry {self.data[entry.key]}'
                    )

                new_pointers[entry.key] = entry

        self.pages[byte_range] = page
        self.data.update(new_data)
        for key, pointer in new_pointers.items():
            if pointer.byte_range not in self.pages:
                self.pointers[key] = pointer

### End
