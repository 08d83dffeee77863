from __future__ import annotations

import asyncio
import time
from typing import Optional

from config import settings
from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from models import NodeAction


class RichDisplayManager:
    """Handles Rich-based display updates."""

    def __init__(self, request_counter: Optional[object] = None) -> None:
        self.live: Optional[Live] = None
        self.group: Optional[Group] = None
        self.request_counter = request_counter
        self.counts: dict[NodeAction, int] = {action: 0 for action in NodeAction}
        self.status_text_name_list: Text = Text("Name List: N/A")
        self.status_text_current_step: Text = Text("Current Step: Initializing...")
        self.status_text_counts: Text = Text(self._format_counts())
        self.status_text_elapsed_time: Text = Text("Elapsed Time: 0s")
        self.status_text_requests_per_minute: Text = Text("Requests/Min: 0.0")
        self.run_start_time: float = 0.0
        self._stop_event: asyncio.Event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        if settings.ENABLE_RICH_PROGRESS:
            self.group = Group(
                self.status_text_name_list,
                self.status_text_current_step,
                self.status_text_counts,
                self.status_text_requests_per_minute,
                self.status_text_elapsed_time,
            )
            self.live = Live(
                Panel(
                    self.group,
                    title="Name List Generation",
                    border_style="blue",
                    expand=True,
                ),
                refresh_per_second=4,
                transient=False,
                redirect_stdout=False,
                redirect_stderr=False,
            )

    def _format_counts(self) -> str:
        return (
            f"Generated: {self.counts[NodeAction.GENERATE]}  "
            f"Reused: {self.counts[NodeAction.REUSE]}  "
            f"Seeded: {self.counts[NodeAction.SEED]}  "
            f"Skipped: {self.counts[NodeAction.SKIP]}  "
            f"Failed: {self.counts[NodeAction.FAILED]}"
        )

    def start(self) -> None:
        self.run_start_time = time.time()
        if self.live:
            self.live.start()
            self._stop_event.clear()
            self._task = asyncio.create_task(self._auto_refresh())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        if self.live and self.live.is_started:
            self.update()
            self.live.stop()

    async def _auto_refresh(self) -> None:
        while not self._stop_event.is_set():
            self.update()
            await asyncio.sleep(1)

    def record(self, action: NodeAction) -> None:
        self.counts[action] += 1
        self.status_text_counts.plain = self._format_counts()

    def update(
        self,
        name_list: Optional[str] = None,
        step: Optional[str] = None,
    ) -> None:
        if name_list is not None:
            self.status_text_name_list.plain = f"Name List: {name_list}"
        if step is not None:
            self.status_text_current_step.plain = f"Current Step: {step}"
        if not (self.live and self.group):
            return
        elapsed_seconds = time.time() - self.run_start_time
        request_count = getattr(self.request_counter, "request_count", 0)
        requests_per_minute = (
            request_count / (elapsed_seconds / 60) if elapsed_seconds > 0 else 0.0
        )
        self.status_text_requests_per_minute.plain = (
            f"Requests/Min: {requests_per_minute:.2f}"
        )
        self.status_text_elapsed_time.plain = (
            f"Elapsed Time: {time.strftime('%H:%M:%S', time.gmtime(elapsed_seconds))}"
        )
