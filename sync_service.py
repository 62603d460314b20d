from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from client import CloudClient
from errors import FormatError, SyncError
from models import AppState
from store import StateStore

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.5


class CloudSync:
    """Mirror the store to the cloud for a signed-in user.

    On sign-in the cloud document is pulled once and imported, or seeded
    from local data when the user has none yet. Afterwards every change
    re-arms a debounce timer and only the last change in a burst is pushed.
    Failures are logged and left for the next change to retry.
    """

    def __init__(
        self,
        store: StateStore,
        client: CloudClient,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        self.store = store
        self.client = client
        self.debounce_seconds = debounce_seconds
        self.timer_factory = timer_factory
        self.user_id: Optional[str] = None
        self.loaded = False
        self._timer = None
        self._lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def sign_in(self, user_id: str) -> bool:
        """Associate a user and run the pull-or-seed handshake once.

        Returns whether the handshake completed.
        """
        if self.user_id != user_id:
            self.sign_out()
            self.user_id = user_id
        if not self.loaded:
            self.loaded = self._handshake()
        if self.loaded and self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_change)
        return self.loaded

    def sign_out(self) -> None:
        self._cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.user_id = None
        self.loaded = False

    def _handshake(self) -> bool:
        try:
            document = self.client.fetch(self.user_id)
        except SyncError:
            logger.exception("cloud pull failed for %s", self.user_id)
            return False
        if document is None:
            logger.info("no cloud data for %s, uploading local data", self.user_id)
            return self._push()
        try:
            self.store.import_data(document)
        except FormatError:
            logger.exception("cloud document for %s could not be applied", self.user_id)
            return False
        logger.info("loaded cloud data for %s", self.user_id)
        return True

    def _on_change(self, state: AppState) -> None:
        if self.user_id is None:
            return
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self.timer_factory(self.debounce_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        self._push()

    def flush(self) -> bool:
        """Push immediately instead of waiting for the debounce timer."""
        self._cancel()
        if self.user_id is None:
            return False
        return self._push()

    def _push(self) -> bool:
        user_id = self.user_id
        if user_id is None:
            return False
        try:
            self.client.push(user_id, self.store.export_data())
        except SyncError:
            logger.exception("cloud push failed for %s", user_id)
            return False
        logger.debug("pushed state for %s", user_id)
        return True
