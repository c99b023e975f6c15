"""
=============================================================================
ACCEPT BACKOFF
=============================================================================

When accept() fails for a transient reason (out of file descriptors, a
peer reset mid-accept...), retrying immediately just spins the event loop
and starves every other task. Instead the accept loop sleeps, doubling
the sleep after each consecutive failure:

    failure #    1    2    3    4     5     6     7     8    9+
    delay (ms)   5   10   20   40    80   160   320   640   1000 (cap)

A successful accept() resets the sequence.

=============================================================================
"""

from typing import Optional


INITIAL_ACCEPT_BACKOFF_DELAY = 5      # milliseconds
MAX_ACCEPT_BACKOFF_DELAY = 1000       # milliseconds


class AcceptBackoff:
    """
    Exponential backoff state for one accept loop.

        backoff = AcceptBackoff()
        backoff.next_delay()  # 5
        backoff.next_delay()  # 10
        backoff.reset()
        backoff.delay         # None
    """

    def __init__(
        self,
        initial: int = INITIAL_ACCEPT_BACKOFF_DELAY,
        maximum: int = MAX_ACCEPT_BACKOFF_DELAY,
    ):
        self.initial = initial
        self.maximum = maximum
        self.delay: Optional[int] = None

    def next_delay(self) -> int:
        """Advance to the next delay (ms) and return it."""
        if not self.delay:
            self.delay = self.initial
        else:
            self.delay *= 2
        if self.delay >= self.maximum:
            self.delay = self.maximum
        return self.delay

    def reset(self) -> None:
        """Forget past failures after a successful accept."""
        self.delay = None
