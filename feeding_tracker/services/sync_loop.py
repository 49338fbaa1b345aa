# feeding_tracker/services/sync_loop.py
import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Any, Awaitable, Optional


class SyncLoop:
    """
    동기화 작업 전용 asyncio 이벤트 루프를 백그라운드 Thread에서 실행합니다.

    HistoryManager의 상태는 이 루프에서만 변경됩니다. Flask 요청 스레드는
    submit()/run()으로 코루틴을 넘기고 결과를 기다립니다.
    """

    def __init__(self, name: str = 'sync-loop'):
        self.name = name
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._started = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.is_running:
            return
        self.loop = asyncio.new_event_loop()
        self._started.clear()
        self._thread = threading.Thread(target=self._run, name=self.name)
        self._thread.daemon = True  # 메인 프로세스 종료 시 함께 종료
        self._thread.start()
        self._started.wait()
        logging.info(f"SyncLoop '{self.name}' started")

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.call_soon(self._started.set)
        try:
            self.loop.run_forever()
        finally:
            self.loop.close()

    def submit(self, coro: Awaitable) -> Future:
        """코루틴을 루프에 예약하고 concurrent.futures.Future를 반환합니다."""
        if not self.is_running:
            raise RuntimeError("SyncLoop가 실행 중이 아닙니다. start()를 먼저 호출해주세요.")
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Awaitable, timeout: Optional[float] = None) -> Any:
        """
        코루틴을 루프에서 실행하고 결과를 기다립니다.
        시간 초과 시 concurrent.futures.TimeoutError가 발생하며, 작업 자체는 루프에서 계속됩니다.
        """
        return self.submit(coro).result(timeout)

    def stop(self, timeout: float = 5.0):
        """남은 작업을 취소하고 루프를 종료합니다."""
        if not self.is_running:
            return

        async def _cancel_pending():
            current = asyncio.current_task()
            tasks = [task for task in asyncio.all_tasks() if task is not current]
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        try:
            self.run(_cancel_pending(), timeout=timeout)
        finally:
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._thread.join(timeout)
            self._thread = None
            logging.info(f"SyncLoop '{self.name}' stopped")
