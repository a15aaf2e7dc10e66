import asyncio
from typing import Dict, Optional
from datetime import datetime
from enum import Enum

class ProcessMode(Enum):
    NORMAL = "normal"
    BACKGROUND = "background"

class ProcessLockError(Exception):
    """Base exception for ProcessLock errors"""
    pass

class _LockContext:
    """Async context manager for one acquisition of a keyed lock"""

    def __init__(self, owner: 'ProcessLock', key: str, mode: ProcessMode):
        self.owner = owner
        self.key = key
        self.mode = mode
        self.acquired = False

    async def __aenter__(self) -> Optional['_LockContext']:
        if self.mode == ProcessMode.BACKGROUND:
            self.acquired = await self.owner.try_acquire(self.key, self.mode)
            if not self.acquired:
                self.owner.logger.warning(f"Process {self.key} is already running. Skipping.")
                return None
            return self

        await self.owner.acquire(self.key, self.mode)
        self.acquired = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.acquired:
            await self.owner.release(self.key, error=exc_val)
            self.acquired = False

class ProcessLock:
    """
    Keyed asyncio locks so that at most one process runs per key (one sync per
    connection). Different keys never block each other.

    NORMAL mode waits for the lock; BACKGROUND mode yields None from the context
    manager when the key is already held.
    """

    def __init__(self, config: 'Config', logger: 'CustomLogger'): # type: ignore
        self._locks: Dict[str, asyncio.Lock] = {}
        self._processing_states: Dict[str, dict] = {}
        self.config = config
        self.logger = logger

    def __call__(self, key: str, mode: ProcessMode = ProcessMode.NORMAL) -> _LockContext:
        if not key:
            raise ProcessLockError("Lock key must be specified")
        return _LockContext(self, str(key), mode)

    def _ensure(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
            self._processing_states[key] = {
                'is_running': False,
                'mode': None,
                'start_time': None,
                'end_time': None,
                'last_error': None
            }
        return self._locks[key]

    async def acquire(self, key: str, mode: ProcessMode = ProcessMode.NORMAL) -> None:
        lock = self._ensure(key)
        await lock.acquire()
        self._update_state_start(key, mode)

    async def try_acquire(self, key: str, mode: ProcessMode = ProcessMode.BACKGROUND) -> bool:
        """Acquire without waiting. Returns False when the key is already held."""
        lock = self._ensure(key)
        if lock.locked():
            return False
        # Acquiring an unlocked asyncio.Lock does not suspend
        await lock.acquire()
        self._update_state_start(key, mode)
        return True

    async def release(self, key: str, error: Optional[BaseException] = None) -> None:
        lock = self._locks.get(key)
        if lock is None or not lock.locked():
            return
        self._update_state_end(key, error)
        lock.release()

    def _update_state_start(self, key: str, mode: ProcessMode):
        self._processing_states[key].update({
            'is_running': True,
            'mode': mode.value,
            'start_time': datetime.now(),
            'end_time': None,
            'last_error': None
        })

    def _update_state_end(self, key: str, error: Optional[BaseException] = None):
        self._processing_states[key].update({
            'is_running': False,
            'end_time': datetime.now(),
            'last_error': str(error) if error else None
        })

    def is_running(self, key: str) -> bool:
        """Check if a process is currently running for the key"""
        return self._processing_states.get(str(key), {}).get('is_running', False)

