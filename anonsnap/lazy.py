"""
One-shot lazy initialization for detector handles.

The first caller of :meth:`LazyDetector.get` runs the loader; callers
arriving while it runs block on the same ``Future`` and receive the same
detector, or the same exception. A failed load is forgotten once every
waiter has seen it, so a later call may try again.
"""

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LazyDetector(Generic[T]):
    """Holds a detector that is built on first use.

    Usage:
        handle = LazyDetector("accurate", lambda: SsdFaceDetector(...))
        detector = handle.get()        # loads once
        detector = handle.try_get()    # None if loading fails
    """

    def __init__(self, name: str, loader: Callable[[], T]) -> None:
        self._name = name
        self._loader = loader
        self._lock = threading.Lock()
        self._future: Optional["Future[T]"] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def loaded(self) -> bool:
        """True once a load has completed successfully."""
        future = self._future
        return (
            future is not None
            and future.done()
            and future.exception() is None
        )

    def get(self) -> T:
        """Return the detector, loading it if needed.

        Raises:
            Exception: Whatever the loader raised, to this caller and to
                       every caller that was waiting on the same load.
        """
        with self._lock:
            future = self._future
            owner = future is None
            if owner:
                future = Future()
                self._future = future

        if not owner:
            return future.result()

        logger.info("Initializing %s detector...", self._name)
        try:
            detector = self._loader()
        except BaseException as exc:
            with self._lock:
                self._future = None
            future.set_exception(exc)
            raise

        future.set_result(detector)
        logger.info("%s detector ready.", self._name.capitalize())
        return detector

    def try_get(self) -> Optional[T]:
        """Like :meth:`get`, but log a load failure and return None."""
        try:
            return self.get()
        except Exception as exc:
            logger.warning("%s detector unavailable: %s", self._name.capitalize(), exc)
            return None
