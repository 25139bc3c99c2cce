### copcfile.py - Cloud Optimized Point Cloud reader
##
## Copyright (c) 2010 - 2025 Regents of the University of Colorado
##
## copcfile.py is part of COPCFUN
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
## A native Python COPC reader.
##
## The LAS header and VLRs are read with laspy, the COPC info record is
## located by its VLR (user `entwine`, record 1) and the root hierarchy
## page is read from the offset it names. Points of a single octree node are
## fetched with CopcFile.points_for(key); yield_points walks the octree
## from the root down and yields the points of every node overlapping a
## region.
##
## Local files, HTTP(S) urls (Range requests) and open binary file
## objects are supported.
##
## Use CLI command 'copcinfo'
##
### Code:

import os
import sys
from collections import deque

import numpy as np
import laspy

import copcfun
from copcfun import utils
from copcfun.copcinfo import CopcInfo, COPC_USER_ID, COPC_RECORD_ID
from copcfun.errors import CopcError, KeyNotFound, NotCopcError
from copcfun.fetchers import FilePageFetcher, HttpRangeStream
from copcfun.hierarchy import HierarchyResolver, VoxelKey, ROOT_KEY
from copcfun.points import LazChunkDecoder, PointRangeReader, RawPointDecoder

LASZIP_USER_ID = 'laszip encoded'
LASZIP_RECORD_ID = 22204


def _vlr_user_id(vlr):
    user_id = vlr.user_id
    if isinstance(user_id, bytes):
        user_id = user_id.decode('ascii', errors='ignore')

    return(user_id.rstrip('\0'))


def _vlr_record_data(vlr):
    data = getattr(vlr, 'record_data', None)
    if data is None:
        data = vlr.record_data_bytes()

    return(bytes(data))


class CopcFile:
    """Read the octree nodes of a Cloud Optimized Point Cloud (COPC) file.

    Only the hierarchy pages needed to locate a requested node are read,
    and only the point chunks of requested nodes are decoded.

    Args:
      src (str|file): a path, an http(s) url or a seekable binary file object
      verbose (bool): echo progress to stderr
      info_user_id (str): user id of the VLR holding the COPC info record
      info_record_id (int): record id of the VLR holding the COPC info record
      decoder (object): point decoder to use instead of the one selected
                        from the header's compression flag
      timeout, read_timeout, tries: HTTP options, see fetchers.HttpRangeStream
    """

    def __init__(self, src, verbose=False, info_user_id=COPC_USER_ID,
                 info_record_id=COPC_RECORD_ID, decoder=None, **kwargs):
        self.src = src
        self.verbose = verbose
        self.info_user_id = utils.str_or(info_user_id, COPC_USER_ID)
        self.info_record_id = utils.int_or(info_record_id, COPC_RECORD_ID)
        self._close_fd = False

        if isinstance(src, (str, os.PathLike)):
            src = str(src)
            if utils.fn_url_p(src):
                self.source = HttpRangeStream(src, verbose=verbose, **kwargs)
            else:
                self.source = open(src, 'rb')

            self._close_fd = True
        else:
            self.source = src

        try:
            self.fetch_page = FilePageFetcher(self.source)
            self.header = laspy.LasHeader.read_from(self.source)
            self.info = self._parse_info()
            if self.verbose:
                utils.echo_msg(f'COPC info found: {self.info}')

            root_page_bytes = self.fetch_page(
                self.info.root_hier_offset, self.info.root_hier_size
            )
            self.resolver = HierarchyResolver(
                root_page_bytes,
                self.info.root_hier_size,
                self.info,
                fetch_page=self.fetch_page,
                verbose=self.verbose
            )
            if self.verbose:
                utils.echo_msg(
                    f'root hierarchy page holds {len(self.resolver.data)} data entries'
                )

            self.decoder = decoder if decoder is not None else self._init_decoder()
        except Exception:
            self.close()
            raise


    def __enter__(self):
        return(self)


    def __exit__(self, exc_type, exc_value, exc_traceback):
        self.close()


    def close(self):
        if self._close_fd:
            self.source.close()


    def _parse_info(self):
        """find the COPC info VLR and parse its record data"""

        for vlr in self.header.vlrs:
            if _vlr_user_id(vlr) == self.info_user_id and vlr.record_id == self.info_record_id:
                return(CopcInfo.from_bytes(_vlr_record_data(vlr)))

        raise NotCopcError(
            f'{self.src} has no COPC info VLR ({self.info_user_id}/{self.info_record_id})'
        )


    def _init_decoder(self):
        point_format = self.header.point_format
        dtype = point_format.dtype()
        if self.header.are_points_compressed:
            return(LazChunkDecoder(self.laszip_vlr_data(), point_format.size, dtype=dtype))

        return(RawPointDecoder(point_format.size, dtype=dtype))


    def laszip_vlr_data(self):
        """the record data of the `laszip encoded` VLR, from the info record location if set"""

        if self.info.laz_vlr_size > 0:
            return(self.fetch_page(self.info.laz_vlr_offset, self.info.laz_vlr_size))

        for vlr in self.header.vlrs:
            if _vlr_user_id(vlr) == LASZIP_USER_ID and vlr.record_id == LASZIP_RECORD_ID:
                return(_vlr_record_data(vlr))

        raise NotCopcError(f'{self.src} has compressed points but no laszip VLR')


    def wkt(self):
        """the WKT spatial reference of the file, or None"""

        if not self.info.has_wkt:
            return(None)

        wkt = self.fetch_page(self.info.wkt_vlr_offset, self.info.wkt_vlr_size)
        return(wkt.decode('utf-8', errors='ignore').rstrip('\0'))


    def extra_bytes_data(self):
        """the raw extra-bytes VLR payload, or None"""

        if not self.info.has_extra_bytes:
            return(None)

        return(self.fetch_page(self.info.eb_vlr_offset, self.info.eb_vlr_size))


    def root_bounds(self):
        """the cubic bounds of the root octree node as [xmin, xmax, ymin, ymax, zmin, zmax]"""

        mins = np.asarray(self.header.mins, dtype=float)
        maxs = np.asarray(self.header.maxs, dtype=float)
        center = (mins + maxs) / 2.
        half = float(np.max(maxs - mins)) / 2.
        return([
            center[0] - half, center[0] + half,
            center[1] - half, center[1] + half,
            center[2] - half, center[2] + half
        ])


    def resolve(self, key):
        return(self.resolver.resolve(key))


    def points_for(self, key):
        """a fresh PointRangeReader over the points of exactly `key`.

        The chunk is read on the first `next`; after that the reader owns
        its cursor and may be interleaved with other readers and resolves.
        """

        return(PointRangeReader(self.source, self.resolve(key), self.decoder))


    def walk(self, region=None, max_level=None):
        """yield (key, entry) for every node reachable from the root, coarse to fine.

        Args:
          region (list): [xmin, xmax, ymin, ymax], skip nodes outside of it
          max_level (int): skip nodes deeper than this level
        """

        root_bounds = self.root_bounds() if region is not None else None
        keys = deque([ROOT_KEY])
        while keys:
            key = keys.popleft()
            if max_level is not None and key.level > max_level:
                continue

            if region is not None:
                if not utils.regions_intersect_p(region, key.bounds(root_bounds)[:4]):
                    continue

            try:
                entry = self.resolver.resolve(key)
            except KeyNotFound:
                continue

            yield(key, entry)
            keys.extend(key.children())


    def yield_points(self, region=None, max_level=None):
        """Yield the scaled x, y, z of the points of every node overlapping `region`.

        Yields one numpy record array per octree node.
        """

        scales = self.header.scales
        offsets = self.header.offsets
        n_chunks = 0
        for key, entry in self.walk(region=region, max_level=max_level):
            if entry.point_count == 0:
                continue

            raw = PointRangeReader(self.source, entry, self.decoder).read_array()
            x = raw['X'] * scales[0] + offsets[0]
            y = raw['Y'] * scales[1] + offsets[1]
            z = raw['Z'] * scales[2] + offsets[2]
            if region is not None:
                mask = (x >= region[0]) & (x <= region[1]) & (y >= region[2]) & (y <= region[3])
                x, y, z = x[mask], y[mask], z[mask]

            n_chunks += 1
            if len(x) == 0:
                continue

            yield(np.rec.fromarrays([x, y, z], names='x, y, z'))

        if self.verbose:
            utils.echo_msg(f'read points from {n_chunks} octree nodes')


## ==============================================
## Command-line Interface (CLI)
## $ copcinfo
##
## copcinfo cli
## ==============================================
copcinfo_usage = '''{cmd} ({version}): report on the octree of a COPC file

usage: {cmd} [ -hklqvR [ args ] ] copc-file

Options:
  -k, --key\t\tresolve the octree node `level/x/y/z`
  -l, --max-level\tlimit --entries and --points to octree levels <= this
  -R, --region\t\trestrict --entries and --points to xmin/xmax/ymin/ymax

  --entries\t\tlist the hierarchy data entries
  --points\t\tdump the points (of --key, or of every node) as xyz
  --quiet\t\tLower verbosity to a quiet.

  --help\t\tPrint the usage text
  --version\t\tPrint the version information

Examples:
  % {cmd} autzen.copc.laz
  % {cmd} autzen.copc.laz -k 1/0/1/0 --points
  % {cmd} https://example.com/autzen.copc.laz --entries -l 2\
'''.format(cmd=os.path.basename(sys.argv[0]),
           version=copcfun.__version__)


def _dump_xyz(points, dst_port=None):
    if dst_port is None:
        dst_port = sys.stdout

    for p in points:
        dst_port.write('{} {} {}\n'.format(p['x'], p['y'], p['z']))


def copcfile_cli(argv=sys.argv):
    """run copcinfo from command-line

    See `copcinfo_usage` for full cli options.
    """

    want_verbose = True
    want_entries = False
    want_points = False
    key = None
    max_level = None
    region = None
    src_copc = None

    ## ==============================================
    ## parse command line arguments.
    ## ==============================================
    i = 1
    while i < len(argv):
        arg = argv[i]
        if arg == '--key' or arg == '-k':
            key = argv[i + 1] if i + 1 < len(argv) else None
            i = i + 1
        elif arg[:2] == '-k':
            key = arg[2:]
        elif arg == '--max-level' or arg == '-l':
            max_level = utils.int_or(argv[i + 1]) if i + 1 < len(argv) else None
            i = i + 1
        elif arg == '--region' or arg == '-R':
            region = utils.str2region(argv[i + 1]) if i + 1 < len(argv) else None
            i = i + 1
        elif arg == '--entries':
            want_entries = True
        elif arg == '--points':
            want_points = True
        elif arg == '--quiet' or arg == '-q':
            want_verbose = False
        elif arg == '--help' or arg == '-h':
            print(copcinfo_usage)
            sys.exit(1)
        elif arg == '--version' or arg == '-v':
            print('{}, version {}'.format(os.path.basename(sys.argv[0]), copcfun.__version__))
            sys.exit(1)
        elif arg[0] == '-':
            print(copcinfo_usage)
            sys.exit(0)
        else:
            src_copc = arg

        i = i + 1

    if src_copc is None:
        print(copcinfo_usage)
        utils.echo_error_msg('you must specify a copc file')
        sys.exit(-1)

    try:
        voxel_key = VoxelKey.from_string(key) if key is not None else None
    except ValueError as e:
        utils.echo_error_msg(e)
        sys.exit(-1)

    try:
        with CopcFile(src_copc, verbose=want_verbose) as cf:
            for k, v in cf.info.as_dict().items():
                print(k + ":" + "\t", v)

            if want_entries:
                for this_key, entry in cf.walk(region=region, max_level=max_level):
                    print('{}\t{}\t{}\t{}'.format(
                        this_key, entry.offset, entry.byte_size, entry.point_count
                    ))

            if voxel_key is not None:
                entry = cf.resolve(voxel_key)
                print('{}:\t {}'.format(voxel_key, entry))
                if want_points:
                    scales = cf.header.scales
                    offsets = cf.header.offsets
                    for p in cf.points_for(voxel_key):
                        sys.stdout.write('{} {} {}\n'.format(
                            p['X'] * scales[0] + offsets[0],
                            p['Y'] * scales[1] + offsets[1],
                            p['Z'] * scales[2] + offsets[2]
                        ))
            elif want_points:
                for points in cf.yield_points(region=region, max_level=max_level):
                    _dump_xyz(points)

    except (CopcError, OSError) as e:
        utils.echo_error_msg(e)
        sys.exit(-1)

### End
