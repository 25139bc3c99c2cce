### fetchers.py - byte range fetchers
##
## Copyright (c) 2010 - 2025 Regents of the University of Colorado
##
## fetchers.py is part of COPCFUN
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
## Fetch exact byte ranges out of a COPC source. A fetcher is called as
## fetcher(offset, size) and returns exactly `size` bytes or raises an
## OSError.
##
## HttpRangeStream mimics a read-only file object over HTTP Range requests
## so the LAS header and point chunks of a remote COPC file can be read
## with seek/read like a local one.
##
### Code:

import io
import time
import requests

from copcfun import utils

## Some servers don't like custom user agents...
r_headers = {
    'User-Agent': 'Mozilla/5.0 (X11; Linux x86_64; rv:45.0) Gecko/20100101 Firefox/45.0'
}


class FilePageFetcher:
    """Fetch byte ranges from a seekable binary stream.

    The stream's position is moved by every fetch; give each concurrent
    reader its own stream.
    """

    def __init__(self, stream):
        self.stream = stream


    def __call__(self, offset, size):
        self.stream.seek(offset)
        data = self.stream.read(size)
        if data is None or len(data) < size:
            raise OSError(
                'short read at offset {}: wanted {} bytes, got {}'.format(
                    offset, size, 0 if data is None else len(data)
                )
            )

        return(bytes(data))


class BufferPageFetcher:
    """Fetch byte ranges from an in-memory buffer."""

    def __init__(self, buf):
        self.buf = memoryview(buf)


    def __call__(self, offset, size):
        if offset < 0 or offset + size > len(self.buf):
            raise OSError(
                f'range {offset}+{size} is outside of the {len(self.buf)} byte buffer'
            )

        return(self.buf[offset:offset + size].tobytes())


class HttpRangeStream(io.RawIOBase):
    """read-only file object for HTTP endpoints, using Range requests."""

    def __init__(self, url, headers=r_headers, timeout=None, read_timeout=None,
                 tries=5, verbose=False):
        super().__init__()
        self.url = url
        self.headers = dict(headers)
        self.timeout = utils.float_or(timeout)
        self.read_timeout = utils.float_or(read_timeout)
        self.tries = utils.int_or(tries, 5)
        self.verbose = verbose
        self.pos = 0
        self.session = requests.Session()


    def readable(self):
        return(True)


    def seekable(self):
        return(True)


    def seek(self, pos, whence=io.SEEK_SET):
        if whence == io.SEEK_CUR:
            pos = self.pos + pos
        elif whence != io.SEEK_SET:
            raise OSError('only SEEK_SET and SEEK_CUR are supported')

        if pos < 0:
            raise OSError(f'negative seek position {pos}')

        self.pos = pos
        return(self.pos)


    def tell(self):
        return(self.pos)


    def read(self, n=-1):
        if n is None or n < 0:
            raise OSError('HttpRangeStream can only read a known number of bytes')

        if n == 0:
            return(b'')

        data = self.fetch_range(self.pos, n)
        self.pos += len(data)
        return(data)


    def readinto(self, b):
        data = self.read(len(b))
        b[:len(data)] = data
        return(len(data))


    def fetch_range(self, start, length, tries=None):
        """fetch `length` bytes starting at `start`, retrying on connection errors"""

        tries = self.tries if tries is None else tries
        timeout = self.timeout
        read_timeout = self.read_timeout
        headers = dict(self.headers)
        headers['Range'] = f'bytes={start}-{start + length - 1}'
        while True:
            try:
                req = self.session.get(
                    self.url,
                    headers=headers,
                    timeout=(timeout, read_timeout)
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                tries -= 1
                if tries <= 0:
                    utils.echo_error_msg(f'max-tries exhausted {self.url}')
                    raise

                utils.echo_warning_msg(e)
                timeout = timeout * 2 if timeout is not None else None
                read_timeout = read_timeout * 2 if read_timeout is not None else None
                continue

            if req.status_code == 504 and tries > 1:
                tries -= 1
                time.sleep(2)
                continue

            break

        if req.status_code == 206:
            data = req.content
        elif req.status_code == 200:
            ## server ignored the Range header and sent the whole file
            data = req.content[start:start + length]
        else:
            if self.verbose:
                utils.echo_error_msg(
                    'request from {} returned {}'.format(req.url, req.status_code)
                )
            raise OSError(
                f'range request {start}+{length} to {self.url} returned {req.status_code}'
            )

        return(data)


    def close(self):
        self.session.close()
        super().close()

### End
