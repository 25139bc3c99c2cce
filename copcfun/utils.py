### utils.py - COPCFUN utilities and functions
##
## Copyright (c) 2010 - 2025 Regents of the University of Colorado
##
## utils.py is part of COPCFUN
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
###############################################################################
### Commentary:
## General utility functions used in other modules...
## includes value coercion, message echoing and simple region checks.
##
### Code:

import os
import sys

from tqdm import tqdm

###############################################################################
##
## General Utility Functions, definitions, etc.
##
###############################################################################
def int_or(val, or_val=None):
    """return val if val is integer

    Args:
      val (?): input value to test
      or_val (?): value to return if val is not an int

    Returns:
      ?: val as int otherwise returns or_val
    """

    try:
        return(int(float_or(val)))
    except (TypeError, ValueError, OverflowError):
        return(or_val)


def float_or(val, or_val=None):
    """return val if val is a float

    Args:
      val (?): input value to test
      or_val (?): value to return if val is not a float

    Returns:
      ?: val as float otherwise returns or_val
    """

    try:
        return(float(val))
    except (TypeError, ValueError):
        return(or_val)


def str_or(instr, or_val=None, replace_quote=True):
    """return instr if instr is a string, else or_val"""

    if instr is None:
        return(or_val)

    if replace_quote:
        return(str(instr).replace('"', ''))
    else:
        return(str(instr))


def fn_url_p(fn):
    """check if fn is a url"""

    url_sw = ['http://', 'https://']
    if not isinstance(fn, str):
        return(False)

    for u in url_sw:
        if fn.startswith(u):
            return(True)

    return(False)


def str2region(region_str):
    """parse a `xmin/xmax/ymin/ymax` string into a region list.

    Returns None if the string does not hold 4 numbers.
    """

    vals = [float_or(x) for x in str_or(region_str, '').split('/')]
    if len(vals) != 4 or None in vals:
        return(None)

    return(vals)


def regions_intersect_p(region_a, region_b):
    """Check if two regions intersect.

    regions are lists of [xmin, xmax, ymin, ymax]; a region of None
    intersects everything.
    """

    if region_a is None or region_b is None:
        return(True)

    if region_a[0] > region_b[1] or region_b[0] > region_a[1]:
        return(False)

    if region_a[2] > region_b[3] or region_b[2] > region_a[3]:
        return(False)

    return(True)


###############################################################################
##
## verbosity functions
##
###############################################################################
def echo_warning_msg2(msg, prefix='copcfun'):
    """echo warning msg to stderr using `prefix`

    >> echo_warning_msg2('message', 'test')
    test: warning, message

    Args:
      msg (str): a message
      prefix (str): a prefix for the message
    """

    sys.stderr.write('\x1b[2K\r')
    tqdm.write(
        '{}: \033[33m\033[1mwarning\033[m, {}'.format(prefix, msg),
        file=sys.stderr
    )
    sys.stderr.flush()


def echo_error_msg2(msg, prefix='copcfun'):
    """echo error msg to stderr using `prefix`

    >> echo_error_msg2('message', 'test')
    test: error, message

    Args:
      msg (str): a message
      prefix (str): a prefix for the message
    """

    sys.stderr.write('\x1b[2K\r')
    tqdm.write(
        '{}: \033[31m\033[1merror\033[m, {}'.format(prefix, msg),
        file=sys.stderr
    )
    sys.stderr.flush()


def echo_msg2(msg, prefix='copcfun'):
    """echo `msg` to stderr using `prefix`

    >> echo_msg2('message', 'test')
    test: message

    Args:
      msg (str): a message
      prefix (str): a prefix for the message
    """

    sys.stderr.write('\x1b[2K\r')
    tqdm.write(
        '{}: {}'.format(prefix, msg),
        file=sys.stderr
    )
    sys.stderr.flush()


###############################################################################
##
## echo message `m` to sys.stderr using
## auto-generated prefix
##
###############################################################################
echo_msg = lambda m: echo_msg2(m, prefix = os.path.basename(sys.argv[0]))
echo_error_msg = lambda m: echo_error_msg2(m, prefix = os.path.basename(sys.argv[0]))
echo_warning_msg = lambda m: echo_warning_msg2(m, prefix = os.path.basename(sys.argv[0]))

### End
