"""Clock helpers.

``monotonic`` is the clock for measuring elapsed time and for
:func:`faultline.gen.time_limit`; ``proc`` is processor time, used by the
runner to report how much CPU a test consumed.
"""

import datetime
import time

monotonic = time.monotonic
monotonic64 = time.monotonic_ns
proc = time.process_time
sleep = time.sleep


def dt() -> str:
    """Return the local date and time with microsecond precision.

    >>> dt()  # doctest: +SKIP
    '2022-06-01 10:38:07.081899'
    """
    return datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")
