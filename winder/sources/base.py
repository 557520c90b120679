import abc


class BaseSource(abc.ABC):
    """
    Producer side of a window: turns some external input into payloads and
    hands each one to the ``submit`` callable it was built with (normally
    ``WindowActor.submit``).
    """

    @abc.abstractmethod
    async def start(self):
        """
        Submit items until the input ends or ``stop()`` is called, then
        return.  Read errors propagate to the caller; items already
        submitted stay in the window.
        """

    @abc.abstractmethod
    async def stop(self):
        """
        Make a running or future ``start()`` return without submitting
        anything more.  Safe to call more than once, and before ``start()``.
        """
