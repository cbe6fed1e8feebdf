"""Task kernel: task control blocks, priority round-robin scheduler and dispatcher.

Tasks are callables that receive the kernel. A task that returns an iterator
(usually a generator function) is advanced by one step each time it is given
the processor; ``yield`` marks the point where it waits for the next tick.
A plain callable is simply called once per step.

A task that wants to give the processor away (``kernel.yield_()``,
``kernel.delay(n)`` or suspending itself) makes the request and then
``yield``\\ s; the switch happens as soon as control is back in the kernel.
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional, TextIO

DEFAULT_STACK_SIZE = 1024
STACK_CANARY = b"\x33\x33\x33\x33"
STACK_FILL = 0x69


class TaskPriority(IntEnum):
    """Priority classes; the high byte holds the class, the low byte a counter."""

    CRIT = (0x01 << 8) | 0x01
    REALTIME = (0x03 << 8) | 0x03
    HIGH = (0x07 << 8) | 0x07
    ABOVE = (0x0F << 8) | 0x0F
    NORMAL = (0x1F << 8) | 0x1F
    BELOW = (0x3F << 8) | 0x3F
    LOW = (0x7F << 8) | 0x7F
    IDLE = (0xFF << 8) | 0xFF


class TaskState(IntEnum):
    STOPPED = 0
    READY = 1
    RUNNING = 2
    BLOCKED = 3
    SUSPENDED = 4


class KernelError(Exception):
    """Base class for kernel errors."""


class KernelPanic(KernelError):
    """Unrecoverable kernel condition; the system halts."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message


class TaskNotFoundError(KernelError, LookupError):
    """No task has the requested id or entry function."""


class TaskCantRemoveError(KernelError):
    """The running task cannot cancel itself."""


class TaskCantSuspendError(KernelError):
    """Only ready or running tasks can be suspended."""


class TaskCantResumeError(KernelError):
    """Only suspended tasks can be resumed."""


class InvalidPriorityError(KernelError, ValueError):
    """The priority is not one of the defined classes."""


@dataclass
class LstfParameter:
    """Real-time parameters of a periodic task, in ticks."""

    computation: int
    period: int
    deadline: int
    slack: int
    remaining: int


@dataclass
class Task:
    """Task control block."""

    func: Callable[["Kernel"], Any]
    id: int
    stack_size: int
    stack: bytearray = field(repr=False)
    priority: int = int(TaskPriority.NORMAL)
    state: TaskState = TaskState.STOPPED
    delay: int = 0
    rt_prio: Optional[LstfParameter] = None
    _runner: Optional[Iterator[Any]] = field(default=None, repr=False, compare=False)


def noop_rtsched() -> Optional[int]:
    """Default real-time scheduler: never selects a task."""
    return None


class Kernel:
    """Kernel control block together with the task management interface."""

    def __init__(self, preemptive: bool = True, out: Optional[TextIO] = None) -> None:
        self.preemptive = preemptive
        self.out: TextIO = out if out is not None else sys.stdout
        self.tasks: list[Task] = []
        self.current: Optional[Task] = None
        self.rt_sched: Callable[[], Optional[int]] = noop_rtsched
        self.ticks = 0
        self._next_id = 0
        self._stepping = False
        self._yield_pending = False

    # -- helpers -----------------------------------------------------------

    def _print(self, text: str) -> None:
        print(text, file=self.out)

    def _find(self, task_id: int) -> Task:
        for task in self.tasks:
            if task.id == task_id:
                return task
        raise TaskNotFoundError(f"no task with id {task_id}")

    def _check_stack(self) -> None:
        task = self.current
        if task is not None and bytes(task.stack[:4]) != STACK_CANARY:
            self._print(f"\n*** task {task.id}, stack size {task.stack_size}")
            raise KernelPanic("ERR_STACK_CHECK", f"stack corrupted in task {task.id}")

    def _update_delays(self) -> None:
        for task in self.tasks:
            if task.state == TaskState.BLOCKED and task.delay > 0:
                task.delay -= 1
                if task.delay == 0:
                    task.state = TaskState.READY

    def _step(self, task: Task) -> None:
        if task.state == TaskState.STOPPED or task not in self.tasks:
            return
        self._stepping = True
        try:
            if task._runner is None:
                result = task.func(self)
                if not isinstance(result, Iterator):
                    return
                task._runner = result
            try:
                next(task._runner)
            except StopIteration:
                task.state = TaskState.STOPPED
        finally:
            self._stepping = False

    def _run_current(self) -> None:
        if self.current is not None:
            self._step(self.current)
        switches = 0
        while self._yield_pending and switches < len(self.tasks):
            self._yield_pending = False
            switches += 1
            self._switch_and_step()
        self._yield_pending = False

    def _switch_and_step(self) -> None:
        self._check_stack()
        if not self.preemptive:
            self._update_delays()
        self.schedule()
        if self.current is not None:
            self._step(self.current)

    def _require_current(self) -> Task:
        if self.current is None:
            raise KernelError("no task is running")
        return self.current

    # -- task management ---------------------------------------------------

    def spawn(self, func: Callable[["Kernel"], Any], stack_size: int = DEFAULT_STACK_SIZE) -> int:
        """Create a ready task running ``func`` and return its id."""
        if not 8 <= stack_size <= 0xFFFF:
            raise ValueError(f"invalid stack size {stack_size}")
        stack = bytearray([STACK_FILL]) * stack_size
        stack[:4] = STACK_CANARY
        stack[-4:] = STACK_CANARY
        task = Task(func=func, id=self._next_id, stack_size=stack_size, stack=stack)
        self._next_id = (self._next_id + 1) & 0xFFFF
        self.tasks.append(task)
        if self.current is None:
            self.current = task
        name = getattr(func, "__name__", repr(func))
        self._print(f"task {task.id}: {name}, stack size {stack_size}")
        task.state = TaskState.READY
        return task.id

    def cancel(self, task_id: int) -> None:
        """Remove a task other than the running one."""
        if self.current is not None and task_id == self.current.id:
            raise TaskCantRemoveError(f"task {task_id} is running")
        self.tasks.remove(self._find(task_id))

    def delay(self, ticks: int) -> None:
        """Block the running task for ``ticks`` ticks and give up the processor."""
        task = self._require_current()
        task.delay = ticks
        task.state = TaskState.BLOCKED
        self.yield_()

    def suspend(self, task_id: int) -> None:
        task = self._find(task_id)
        if task.state not in (TaskState.READY, TaskState.RUNNING):
            raise TaskCantSuspendError(f"task {task_id} is {task.state.name}")
        task.state = TaskState.SUSPENDED
        if task is self.current:
            self.yield_()

    def resume(self, task_id: int) -> None:
        task = self._find(task_id)
        if task.state != TaskState.SUSPENDED:
            raise TaskCantResumeError(f"task {task_id} is {task.state.name}")
        task.state = TaskState.READY

    def set_priority(self, task_id: int, priority: int) -> None:
        try:
            value = TaskPriority(priority)
        except ValueError:
            raise InvalidPriorityError(f"invalid priority {priority:#x}") from None
        self._find(task_id).priority = int(value)

    def set_rt_priority(self, task_id: int, params: Optional[LstfParameter]) -> None:
        """Attach real-time parameters; the task leaves the round-robin scheduler."""
        if params is None:
            raise InvalidPriorityError("real-time parameters are required")
        task = self._find(task_id)
        task.rt_prio = params
        self._print(f"task {task_id}: real-time parameters {params}")
        task.priority = int(TaskPriority.REALTIME)

    def task_id(self) -> int:
        return self._require_current().id

    def idref(self, func: Callable[["Kernel"], Any]) -> int:
        """Return the id of the task whose entry function is ``func``."""
        for task in self.tasks:
            if task.func is func:
                return task.id
        raise TaskNotFoundError(f"no task runs {func!r}")

    def count(self) -> int:
        return len(self.tasks)

    def current_params(self) -> Optional[LstfParameter]:
        """Real-time parameters of the running task, if it has any."""
        return self.current.rt_prio if self.current is not None else None

    # -- scheduling --------------------------------------------------------

    def schedule(self) -> Optional[int]:
        """Priority round robin; returns the selected id or None."""
        if self.current is not None and self.current.state == TaskState.RUNNING:
            self.current.state = TaskState.READY

        best: Optional[Task] = None
        idle: Optional[Task] = None
        high = 0
        for task in self.tasks:
            if task.priority == TaskPriority.IDLE:
                idle = task
                continue
            lsb = task.priority & 0xFF
            if (
                task.rt_prio is None
                and task.priority != TaskPriority.REALTIME
                and task.state == TaskState.READY
                and lsb > high
            ):
                high = lsb
                best = task

        if best is not None:
            best.state = TaskState.RUNNING
            self.current = best
            counter = ((best.priority & 0xFF) - 1) & 0xFF
            if 0 < counter <= 0x1F:
                best.priority = (0x1F << 8) | counter
            else:
                best.priority = int(TaskPriority.NORMAL)
            self._print(f"selected task {best.id}")
            self._print(f"priority {best.priority}")
            return best.id
        if idle is not None:
            idle.state = TaskState.RUNNING
            self.current = idle
            return idle.id
        self._print("no task available, not even the idle task")
        return None

    def dispatch(self) -> None:
        """Timer tick: count it, pick the next task and run it for one step."""
        self.ticks += 1
        if not self.tasks:
            raise KernelPanic("ERR_NO_TASKS", "no tasks to run")
        self._check_stack()
        self._update_delays()
        if self.rt_sched() is None:
            self.schedule()
        self._run_current()

    def yield_(self) -> None:
        """Give the processor to the next task chosen by the scheduler."""
        if not self.tasks:
            raise KernelPanic("ERR_NO_TASKS", "no tasks to run")
        if self._stepping:
            self._yield_pending = True
            return
        self._switch_and_step()
        self._run_pending()

    def _run_pending(self) -> None:
        switches = 0
        while self._yield_pending and switches < len(self.tasks):
            self._yield_pending = False
            switches += 1
            self._switch_and_step()
        self._yield_pending = False

    def run(self, ticks: int) -> None:
        """Run for ``ticks`` timer ticks, or scheduling rounds when cooperative."""
        for _ in range(ticks):
            if self.preemptive:
                self.dispatch()
            else:
                self.yield_()