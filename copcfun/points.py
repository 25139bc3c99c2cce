### points.py - COPC point chunk reading
##
## Copyright (c) 2010 - 2025 Regents of the University of Colorado
##
## points.py is part of COPCFUN
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
## Stream the points of one resolved data entry.
##
## A decoder has two calls:
##   open_chunk(source, entry) -> cursor  ## source is already at entry.offset
##   decode_point(cursor) -> point        ## one point record, advancing cursor
##
## Both decoders read the whole chunk on open_chunk and hand out its
## records from a private cursor, so page fetches or other readers moving
## the shared source between two points do not disturb a reader.
## RawPointDecoder reads fixed-size uncompressed point records,
## LazChunkDecoder decompresses the LAZ chunk with lazrs first.
##
## Requires: laspy[lazrs] for compressed chunks.
##
### Code:

import io

import numpy as np
import lazrs
import laspy

from copcfun.errors import DecodeError, TruncatedRecord


class RawPointDecoder:
    """Decode uncompressed fixed-length point records.

    Args:
      point_size (int): the point record length in bytes
      dtype (numpy.dtype): optional record dtype; when given, points are
                           numpy records, otherwise the raw record bytes
    """

    def __init__(self, point_size, dtype=None):
        self.point_size = int(point_size)
        self.dtype = None if dtype is None else np.dtype(dtype)
        if self.dtype is not None and self.dtype.itemsize != self.point_size:
            raise ValueError(
                f'dtype itemsize {self.dtype.itemsize} does not match point size {self.point_size}'
            )


    def open_chunk(self, source, entry):
        """read the whole chunk at once; the cursor never touches `source` again.

        A short chunk is not an error here, decode_point raises on the
        first point that runs past its end.
        """

        raw = source.read(entry.point_count * self.point_size)
        return(io.BytesIO(b'' if raw is None else bytes(raw)))


    def decode_point(self, cursor):
        raw = cursor.read(self.point_size)
        if raw is None or len(raw) < self.point_size:
            raise TruncatedRecord(
                'point record', self.point_size, 0 if raw is None else len(raw)
            )

        if self.dtype is None:
            return(bytes(raw))

        return(np.frombuffer(raw, dtype=self.dtype)[0])


class LazChunkDecoder(RawPointDecoder):
    """Decode points of an independently compressed LAZ chunk.

    Args:
      laszip_vlr_data (bytes): record data of the `laszip encoded` VLR
      point_size (int): the uncompressed point record length in bytes
      dtype (numpy.dtype): optional record dtype
    """

    def __init__(self, laszip_vlr_data, point_size, dtype=None):
        super().__init__(point_size, dtype=dtype)
        self.laszip_vlr_data = bytes(laszip_vlr_data)
        self.selection = laspy.DecompressionSelection.all().to_lazrs()


    def open_chunk(self, source, entry):
        compressed = source.read(entry.byte_size)
        if compressed is None or len(compressed) < entry.byte_size:
            raise TruncatedRecord(
                'laz chunk', entry.byte_size, 0 if compressed is None else len(compressed)
            )

        points = np.zeros(entry.point_count * self.point_size, dtype=np.uint8)
        lazrs.decompress_points_with_chunk_table(
            compressed,
            self.laszip_vlr_data,
            points,
            [(entry.point_count, entry.byte_size)],
            self.selection,
        )
        return(io.BytesIO(points.tobytes()))


class PointRangeReader:
    """Lazy iterator over the points of one data entry.

    The source is positioned at entry.offset and the chunk is opened on
    the first `next`, then the decoder is called once per point. A decoder
    failure raises DecodeError and ends the iteration; the reader is not
    restartable.
    """

    def __init__(self, source, entry, decoder):
        if not entry.is_data:
            raise ValueError(f'{entry} is not a data entry')

        self.source = source
        self.entry = entry
        self.decoder = decoder
        self.index = 0
        self._cursor = None
        self._done = entry.point_count == 0


    def __iter__(self):
        return(self)


    def __len__(self):
        return(0 if self._done else self.entry.point_count - self.index)


    def __next__(self):
        if self._done or self.index >= self.entry.point_count:
            self._done = True
            raise StopIteration

        if self._cursor is None:
            try:
                self.source.seek(self.entry.offset)
            except OSError:
                self._done = True
                raise

        try:
            if self._cursor is None:
                self._cursor = self.decoder.open_chunk(self.source, self.entry)

            point = self.decoder.decode_point(self._cursor)
        except Exception as e:
            self._done = True
            raise DecodeError(self.entry, self.index, e) from e

        self.index += 1
        return(point)


    def read_array(self):
        """collect the remaining points in a numpy array (needs a decoder dtype)"""

        if self.decoder.dtype is None:
            raise ValueError('read_array needs a decoder with a point dtype')

        points = np.empty(len(self), dtype=self.decoder.dtype)
        for i, point in enumerate(self):
            points[i] = point

        return(points)

### End
