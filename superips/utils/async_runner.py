# superips/utils/async_runner.py
import asyncio
import threading
from typing import Optional


class AsyncLoopThread:
    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._start_loop, name="superips-async", daemon=True)
        self.thread.start()

    def _start_loop(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def run_coro(self, coro):
        """Agenda a coroutine e retorna concurrent.futures.Future"""
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self):
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=5)


_async_loop: Optional[AsyncLoopThread] = None
_lock = threading.Lock()


def get_async_loop() -> AsyncLoopThread:
    """Instância global, criada na primeira utilização (nunca crie outra)."""
    global _async_loop
    with _lock:
        if _async_loop is None or not _async_loop.thread.is_alive():
            _async_loop = AsyncLoopThread()
        return _async_loop
