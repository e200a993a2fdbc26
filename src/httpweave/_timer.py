"""
Cancellable one-shot deadline timer bound to a dispatch loop
"""


class DeadlineTimer:
    """Fires a callback after N seconds unless stopped first.

    Must only be used from the loop's thread.
    """

    def __init__(self, loop):
        self._loop = loop
        self._handle = None

    @property
    def armed(self):
        return self._handle is not None

    def start(self, seconds, callback):
        """Arm the timer, replacing any alarm that is still pending"""
        self.stop()
        self._handle = self._loop.call_later(seconds, self._fire, callback)

    def stop(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, callback):
        self._handle = None
        callback()
