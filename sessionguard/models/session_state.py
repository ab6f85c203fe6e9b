# sessionguard/models/session_state.py
"""
Request-scoped session state layered over a SessionStore.

Flash bookkeeping lives in the session data itself under FLASH_KEY:
    {"new": [keys flashed this request], "old": [keys flashed last request]}
Keys listed in "old" are removed when the session is activated, so a
flashed value is visible in the request that set it and the next one.
"""
import logging
from typing import Any, Dict, List

from sessionguard.services.session_store import SessionStore

logger = logging.getLogger(__name__)

FLASH_KEY = "_flash"


class Session:
    """
    In-memory session state for one request.

    Not safe for concurrent use; one Session is created per request.
    """

    def __init__(self, store: SessionStore):
        self._store = store
        self._data: Dict[str, Any] = {}
        self._started = False
        self._flash_aged = False

    @property
    def store(self) -> SessionStore:
        return self._store

    def start(self) -> None:
        """
        Start the session, pulling data from the store.

        Idempotent. A store that closed itself after save() is re-opened
        and re-read, but flash data is aged only once per activation.
        """
        if self._started and self._store.is_started():
            return

        if not self._store.is_started():
            self._store.start()

        self._data = self._store.read()

        if not self._flash_aged:
            self._age_flash_data()
            self._flash_aged = True

        self._started = True

    def is_started(self) -> bool:
        return self._started or self._store.is_started()

    def all(self) -> Dict[str, Any]:
        return dict(self._data)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def has(self, key: str) -> bool:
        return key in self._data

    def forget(self, key: str) -> None:
        self._data.pop(key, None)
        self._forget_flash_key(key)

    def clear(self) -> None:
        self._data = {}

    def flash(self, key: str, value: Any) -> None:
        """Store a value for this request and the next one."""
        flash = self._initialize_flash()

        self._data[key] = value
        if key not in flash["new"]:
            flash["new"] = flash["new"] + [key]
        # Re-flashed keys must survive the next aging pass
        flash["old"] = [k for k in flash["old"] if k != key]

    def get_flash(self, key: str, default: Any = None) -> Any:
        return self.get(key, default)

    def pull(self, key: str, default: Any = None) -> Any:
        value = self.get(key, default)
        self.forget(key)
        return value

    def save(self) -> None:
        if not self._started:
            return

        self._store.write(self._data)
        # Stores may close themselves after writing
        self._started = self._store.is_started()

    def regenerate(self, delete_old: bool = True) -> None:
        self._store.regenerate_id(delete_old)

    def destroy(self) -> None:
        self._data = {}
        self._store.destroy()
        self._started = False
        self._flash_aged = False

    def _initialize_flash(self) -> Dict[str, List[str]]:
        flash = self._data.get(FLASH_KEY)
        if not isinstance(flash, dict):
            if flash is not None:
                logger.debug("Reinitializing malformed flash bookkeeping")
            flash = {"new": [], "old": []}
            self._data[FLASH_KEY] = flash
            return flash

        for bucket in ("new", "old"):
            if not isinstance(flash.get(bucket), list):
                flash[bucket] = []
        return flash

    def _age_flash_data(self) -> None:
        flash = self._initialize_flash()

        for key in flash["old"]:
            self._data.pop(key, None)

        flash["old"] = flash["new"]
        flash["new"] = []

    def _forget_flash_key(self, key: str) -> None:
        flash = self._data.get(FLASH_KEY)
        if not isinstance(flash, dict):
            return

        for bucket in ("new", "old"):
            keys = flash.get(bucket)
            if isinstance(keys, list):
                flash[bucket] = [k for k in keys if k != key]
