"""The serialized message loop that drives a Navigator."""

import asyncio
import webbrowser
from datetime import datetime
from typing import Callable, List, Optional

import structlog

from . import messages as msg
from .navigator import Navigator
from .state import SessionState
from ..errors import SkimmerError

logger = structlog.get_logger()


class SessionLoop:
    """Feeds queued messages to the navigator one at a time and runs its effects.

    Refreshes run as background tasks that only do network I/O; the fetched
    items come back as a RefreshFetched message, so every store write happens
    here, in order, between user messages.
    """

    def __init__(
        self,
        navigator: Navigator,
        launcher: Callable[[str], object] = None,
        on_change: Callable[[SessionState], None] = None,
        tick_seconds: float = 60.0,
    ):
        self.navigator = navigator
        self.launcher = launcher or webbrowser.open
        self.on_change = on_change
        self.tick_seconds = tick_seconds
        self.queue: asyncio.Queue = asyncio.Queue()
        self._tasks: List[asyncio.Task] = []
        self._refresh_task: Optional[asyncio.Task] = None

    def post(self, message) -> None:
        """Queue a message; safe to call from tasks on the same event loop."""
        self.queue.put_nowait(message)

    async def run(self) -> SessionState:
        """Process messages until Quit arrives."""
        self.navigator.load()
        self._notify()
        if self.navigator.refresh_interval_minutes > 0:
            self._tasks.append(asyncio.create_task(self._tick()))

        try:
            while True:
                message = await self.queue.get()
                if isinstance(message, msg.Quit):
                    break
                for effect in self.navigator.update(message):
                    self._run_effect(effect)
                self._notify()
        finally:
            await self.stop()
        return self.navigator.state

    async def stop(self) -> None:
        """Cancel the in-flight refresh and the ticker."""
        tasks = [t for t in self._tasks if not t.done()]
        if self._refresh_task is not None and not self._refresh_task.done():
            tasks.append(self._refresh_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = []
        self._refresh_task = None

    def _notify(self) -> None:
        if self.on_change:
            self.on_change(self.navigator.state)

    def _run_effect(self, effect) -> None:
        if isinstance(effect, msg.StartRefresh):
            self._refresh_task = asyncio.create_task(self._refresh())
        elif isinstance(effect, msg.LaunchUrl):
            logger.info("launching_url", url=effect.url)
            self.launcher(effect.url)
        else:
            logger.warning("unknown_effect", effect=type(effect).__name__)

    async def _refresh(self) -> None:
        try:
            result = await self.navigator.pipeline.fetch()
        except SkimmerError as e:
            self.post(msg.RefreshFailed(str(e)))
            return
        except Exception as e:
            logger.exception("refresh_crashed")
            self.post(msg.RefreshFailed(str(e) or e.__class__.__name__))
            return
        self.post(msg.RefreshFetched(result, finished_at=datetime.now()))

    async def _tick(self) -> None:
        while True:
            self.post(msg.RefreshTick(datetime.now()))
            await asyncio.sleep(self.tick_seconds)
