"""
Runtime execution shell for one assistant surface.

Responsibilities:
- Own coordinator state
- Mirror Session mode/status into the state before every reduce
- Call the pure reducer
- Execute commands with side effects, in order, awaiting each one
- Serialize user actions through a per-surface queue

Non-responsibilities:
- No coordination decisions (reducer)
- No session status transitions (SessionController)
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Callable

from coordinator.actions import Action, ActionType, ModeEntered
from coordinator.commands import (
    Command,
    EnterMode,
    LogEvent,
    ResetTranscript,
    SendUserMessage,
    StartSession,
    StopSession,
)
from coordinator.reducer import reduce
from coordinator.state_dataclass import CoordinatorState
from observability.logger import log_event, now_ms
from session.controller import SessionController
from session.status import MODE_CHANGE_STATUSES, IllegalModeChange
from transcript.message_log import MessageLog


class ModeCoordinator:
    """
    Runtime execution boundary for the mode coordinator.

    Guarantees:
    - Reducer is called exactly once per action
    - Commands execute in reducer-emitted order
    - StopSession resolves fully (channel closed, connect attempt cancelled)
      before the next command runs, so a StartSession can never overlap a
      prior session
    - StartSession returns once the session has left IDLE; the connect
      attempt itself continues as a tracked task so later actions (a mode
      switch, a second toggle) are reduced against CONNECTING
    """

    def __init__(
        self,
        *,
        controller: SessionController,
        message_log: MessageLog,
        initial_state: CoordinatorState | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._controller = controller
        self._log = message_log
        self._state = initial_state or CoordinatorState()
        self._on_change = on_change

        self._queue: asyncio.Queue[Action] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._start_task: asyncio.Task[bool] | None = None

        # Session mode always follows the coordinator's initial mode.
        self._controller.session.mode = self._state.mode

    @property
    def state(self) -> CoordinatorState:
        """
        Current immutable coordinator state.

        `mode`/`status` are refreshed from the Session before every reduce,
        so read the Session itself for live values.
        """
        return self._state

    # ------------------------------------------------------------------
    # Action intake
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the action worker (surface mounted)."""
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())

    def dispatch(self, action: Action) -> None:
        """Queue an action; the worker reduces it in arrival order."""
        self._queue.put_nowait(action)

    async def _run(self) -> None:
        while True:
            action = await self._queue.get()
            try:
                await self.handle_action(action)
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "COORDINATOR_ACTION_FAILED",
                    **self._controller.session.log_context(),
                    "action_type": action.action_type.value,
                    "exception": type(e).__name__,
                    "message": str(e),
                })
            finally:
                self._queue.task_done()

    async def handle_action(self, action: Action) -> None:
        """
        Process one action and any follow-up actions it produces.

        This is the only entry point for state changes. Follow-ups
        (ModeEntered after EnterMode) are reduced after the commands of the
        action that produced them have all executed.
        """
        pending: list[Action] = [action]
        while pending:
            current = pending.pop(0)

            session = self._controller.session
            self._state = replace(self._state, mode=session.mode, status=session.status)

            new_state, commands = reduce(self._state, current)
            self._state = new_state

            for cmd in commands:
                follow_up = await self._execute_command(cmd)
                if follow_up is not None:
                    pending.append(follow_up)

            self._changed()

    async def settle(self) -> None:
        """Wait until queued actions and any in-flight connect attempt finish."""
        await self._queue.join()
        task = self._start_task
        if task is not None:
            await asyncio.wait({task})

    async def shutdown(self) -> None:
        """
        Clean shutdown (surface unmounted).

        Stops the worker, tears down any live session and cancels an
        in-flight connect attempt.
        """
        worker = self._worker
        self._worker = None
        if worker is not None:
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)

        await self._stop_session()

        log_event({
            "ts_ms": now_ms(),
            "event_type": "coordinator_shutdown",
            **self._controller.session.log_context(),
            "dropped_actions": self._queue.qsize(),
        })

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> Action | None:
        """Execute a single command. Returns a follow-up action, if any."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._controller.session.session_id,
            })

        elif isinstance(cmd, StopSession):
            await self._stop_session()

        elif isinstance(cmd, StartSession):
            self._start_task = asyncio.create_task(self._controller.start(cmd.mode))
            # Let the attempt run up to its first suspension (status CONNECTING).
            await asyncio.sleep(0)

        elif isinstance(cmd, ResetTranscript):
            self._log.reset()

        elif isinstance(cmd, EnterMode):
            session = self._controller.session
            if session.status not in MODE_CHANGE_STATUSES:
                raise IllegalModeChange(session.status)
            session.mode = cmd.mode
            return ModeEntered(
                action_type=ActionType.MODE_ENTERED,
                ts_ms=now_ms(),
                mode=cmd.mode,
                entry=cmd.entry,
            )

        elif isinstance(cmd, SendUserMessage):
            self._controller.send_message(cmd.text)

        return None

    async def _stop_session(self) -> None:
        await self._controller.stop()

        task = self._start_task
        self._start_task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
