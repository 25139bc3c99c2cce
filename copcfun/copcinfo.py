### copcinfo.py - COPC info record
##
## Copyright (c) 2010 - 2025 Regents of the University of Colorado
##
## copcinfo.py is part of COPCFUN
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
## The COPC info VLR payload: a fixed 160 byte little-endian record
## holding the octree span and the file locations of the root hierarchy
## page and the LAZ, WKT and extra-bytes VLR payloads.
##
## See https://copc.io/DRAFT-SPEC.html
##
### Code:

import struct

from copcfun.errors import MalformedMetadata

## user_id / record_id of the VLR that carries the info record
COPC_USER_ID = 'entwine'
COPC_RECORD_ID = 1
RESERVED_COUNT = 11

## (name, struct format) in file order
copc_info_struct = (
    ('span', 'q'),
    ('root_hier_offset', 'Q'),
    ('root_hier_size', 'Q'),
    ('laz_vlr_offset', 'Q'),
    ('laz_vlr_size', 'Q'),
    ('wkt_vlr_offset', 'Q'),
    ('wkt_vlr_size', 'Q'),
    ('eb_vlr_offset', 'Q'),
    ('eb_vlr_size', 'Q'),
)

_field_packer = struct.Struct('<' + ''.join(f[1] for f in copc_info_struct))
_reserved_packer = struct.Struct('<{}Q'.format(RESERVED_COUNT))
COPC_INFO_SIZE = _field_packer.size + _reserved_packer.size


class CopcInfo:
    """COPC info record

    span is the number of voxels in each spatial dimension at the
    finest level; the *_offset/*_size pairs locate payloads in the
    host file, the optional ones (wkt, eb) are 0 when absent.
    """

    def __init__(self, span=0, root_hier_offset=0, root_hier_size=0,
                 laz_vlr_offset=0, laz_vlr_size=0, wkt_vlr_offset=0,
                 wkt_vlr_size=0, eb_vlr_offset=0, eb_vlr_size=0,
                 reserved=None):
        self.span = span
        self.root_hier_offset = root_hier_offset
        self.root_hier_size = root_hier_size
        self.laz_vlr_offset = laz_vlr_offset
        self.laz_vlr_size = laz_vlr_size
        self.wkt_vlr_offset = wkt_vlr_offset
        self.wkt_vlr_size = wkt_vlr_size
        self.eb_vlr_offset = eb_vlr_offset
        self.eb_vlr_size = eb_vlr_size
        self.reserved = [0] * RESERVED_COUNT if reserved is None else list(reserved)


    def __repr__(self):
        return('CopcInfo({})'.format(
            ', '.join(['{}={}'.format(f[0], getattr(self, f[0])) for f in copc_info_struct])
        ))


    def __eq__(self, other):
        if not isinstance(other, CopcInfo):
            return(NotImplemented)

        return(self.as_dict() == other.as_dict() and self.reserved == other.reserved)


    def as_dict(self):
        return({f[0]: getattr(self, f[0]) for f in copc_info_struct})


    @property
    def has_wkt(self):
        return(self.wkt_vlr_size > 0)


    @property
    def has_extra_bytes(self):
        return(self.eb_vlr_size > 0)


    @classmethod
    def from_bytes(cls, data):
        """Parse an info record from the first COPC_INFO_SIZE bytes of `data`.

        Raises MalformedMetadata if `data` is short or a reserved word is set.
        """

        if data is None or len(data) < COPC_INFO_SIZE:
            raise MalformedMetadata(
                'copc info record needs {} bytes, got {}'.format(
                    COPC_INFO_SIZE, 0 if data is None else len(data)
                )
            )

        try:
            values = _field_packer.unpack_from(data, 0)
            reserved = _reserved_packer.unpack_from(data, _field_packer.size)
        except struct.error as e:
            raise MalformedMetadata(f'could not decode copc info record: {e}') from e

        for n, word in enumerate(reserved):
            if word != 0:
                raise MalformedMetadata(
                    f'reserved word {n} of the copc info record is {word}, expected 0'
                )

        info = cls(**dict(zip([f[0] for f in copc_info_struct], values)))
        info.reserved = list(reserved)
        return(info)


    @classmethod
    def read_from(cls, stream):
        """Consume exactly COPC_INFO_SIZE bytes from `stream` and parse them."""

        return(cls.from_bytes(stream.read(COPC_INFO_SIZE)))


    def to_bytes(self):
        try:
            return(
                _field_packer.pack(*[getattr(self, f[0]) for f in copc_info_struct])
                + _reserved_packer.pack(*self.reserved)
            )
        except struct.error as e:
            raise MalformedMetadata(f'could not encode copc info record: {e}') from e


    def write_to(self, stream):
        stream.write(self.to_bytes())

### End
