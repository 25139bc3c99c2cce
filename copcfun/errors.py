### errors.py
##
## Copyright (c) 2010 - 2025 Regents of the University of Colorado
##
## errors.py is part of COPCFUN
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
## Exceptions raised while reading COPC metadata, hierarchy pages and
## point chunks.
##
### Code:

class CopcError(Exception):
    """Base class of all copcfun errors"""


class MalformedMetadata(CopcError):
    """The COPC info record is short, undecodable or has non-zero reserved words"""


class InvalidPageSize(CopcError):
    """A hierarchy page size is not a multiple of the entry size"""

    def __init__(self, page_size):
        self.page_size = page_size
        super().__init__(
            f'hierarchy page size {page_size} is not a multiple of 32'
        )


class TruncatedRecord(CopcError):
    """Fewer bytes are available than a fixed record requires"""

    def __init__(self, what, wanted, got):
        self.wanted = wanted
        self.got = got
        super().__init__(
            f'truncated {what}: wanted {wanted} bytes, got {got}'
        )


class CorruptHierarchy(CopcError):
    """The hierarchy pages disagree with each other or hold invalid entries"""


class KeyNotFound(CopcError, KeyError):
    """The voxel key is absent from the entire reachable hierarchy"""

    def __init__(self, key):
        self.key = key
        super().__init__(key)

    def __str__(self):
        return(f'{self.key} not found in the hierarchy')


class PageFetchError(CopcError, OSError):
    """Reading a hierarchy page from the source failed.

    The underlying I/O error is chained as __cause__.
    """

    def __init__(self, offset, size, reason=None):
        self.offset = offset
        self.size = size
        super().__init__(
            f'could not fetch {size} bytes at offset {offset}: {reason}'
        )


class DecodeError(CopcError):
    """A point record in a data chunk could not be decoded"""

    def __init__(self, entry, index, reason=None):
        self.entry = entry
        self.index = index
        super().__init__(
            f'failed to decode point {index} of chunk {entry}: {reason}'
        )


class NotCopcError(CopcError):
    """The LAS/LAZ source does not carry a COPC info record"""

### End
