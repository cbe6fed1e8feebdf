"""Least-slack-time-first real-time scheduler and the demonstration task set."""

from __future__ import annotations

import argparse
from collections.abc import Callable, Iterator
from typing import Optional

from ucxsim.kernel import (
    DEFAULT_STACK_SIZE,
    Kernel,
    KernelPanic,
    LstfParameter,
    Task,
    TaskPriority,
    TaskState,
)

STOP_TIME = 13
KILL_IF_DEADLINE_MISS = False
_RULE = "-" * 71


def _c_mod(a: int, b: int) -> int:
    """Remainder with the sign of the dividend, as integer division truncates."""
    r = abs(a) % abs(b)
    return -r if a < 0 else r


class LstfScheduler:
    """Selects the ready real-time task with the least slack at each tick."""

    def __init__(
        self,
        kernel: Kernel,
        stop_time: int = STOP_TIME,
        kill_on_miss: bool = KILL_IF_DEADLINE_MISS,
    ) -> None:
        self.kernel = kernel
        self.stop_time = stop_time
        self.kill_on_miss = kill_on_miss

    def _print(self, text: str) -> None:
        print(text, file=self.kernel.out)

    def _fail(self, task: Task, now: int) -> None:
        self._print("\n*[ERR_LSF] LSF scheduling failed:")
        self._print(f"Task ID ({task.id})")
        self._print(f"At time rt({now})")
        self._print(f"At time ticks({self.kernel.ticks})")
        raise KernelPanic("ERR_LSF_FAIL", f"LSF failure in task {task.id} at time {now}")

    def _reset(self, task: Task, params: LstfParameter) -> None:
        params.remaining = params.computation
        params.slack = (params.deadline - params.computation) & 0xFF
        self._print(f'----->"RESET" TASK_ID {task.id}')

    def __call__(self) -> Optional[int]:
        kernel = self.kernel
        now = kernel.ticks
        current = kernel.current
        if current is not None and current.state == TaskState.RUNNING:
            current.state = TaskState.READY

        self._print(f"\n{_RULE}")
        self._print(f"=TEMPO TICKS {now - 1:02d} = ")

        chosen: Optional[Task] = None
        least = 255
        for task in kernel.tasks:
            params = task.rt_prio
            if (
                params is None
                or task.priority == TaskPriority.IDLE
                or task.state != TaskState.READY
            ):
                continue
            # tick 0 belongs to the idle task, hence now - 1
            relative = _c_mod(now - 1, params.period)
            self._print("-" * 51)
            self._print(f"|Calculating Slack of TASK_ID {task.id:02d}|")

            if params.remaining != 0:
                if relative == 0 and not self.kill_on_miss:
                    self._print(f"----->!!!!!!!!!!!!!!!DEADLINEMISS!!!!!!!!!!!!!!! ID {task.id}")
                    self._reset(task, params)
                slack = params.deadline - params.remaining - relative
                if slack >= 0:
                    params.slack = slack & 0xFF
                    if least > params.slack:
                        chosen, least = task, params.slack
                else:
                    self._print(f"----->!!!!!!!!!!!!!!!DEADLINEMISS!!!!!!!!!!!!!!! ID {task.id}")
                    if self.kill_on_miss:
                        self._fail(chosen if chosen is not None else task, now)

            if params.remaining == 0:
                self._print(f'----->"FINISHED" TASK_ID {task.id}')
                if relative == 0:
                    self._reset(task, params)
                    if least > params.slack:
                        chosen, least = task, params.slack

            self._print(
                f"CONFERNDO:||Slack-> {params.slack:02d}|| (Dl.= {params.deadline:02d} -"
                f"Rem.= {params.remaining:02d} - T.R.= {relative:02d}) |"
                f"(Comp. {params.computation:02d} )|"
                f"(T.R.= {relative:02d} = {now - 1} mod {params.period})|"
            )

        if chosen is None:
            return None

        assert chosen.rt_prio is not None
        chosen.rt_prio.remaining -= 1
        kernel.current = chosen
        chosen.state = TaskState.RUNNING
        if now >= self.stop_time:
            self._fail(chosen, now)
        return chosen.id


def report_task(label: str) -> Callable[[Kernel], Iterator[None]]:
    """Build a task that reports its id and real-time parameters on every run."""

    def task(kernel: Kernel) -> Iterator[None]:
        while True:
            params = kernel.current_params()
            lines = [
                f"\n{_RULE}",
                f'-RUNNING "{label}" <' + "-" * 54,
            ]
            head = f"|TASK ID: {kernel.task_id()} | "
            if params is not None:
                lines.append(
                    head
                    + f"Comp.: {params.computation} | Per.: {params.period} | "
                    f"Dl.: {params.deadline} | Slack: {params.slack} | "
                    f"Remaining: {params.remaining} |"
                )
            else:
                lines.append(head + "[!] Parameters unavailable for this task.")
            print("\n".join(lines), file=kernel.out)
            yield

    task.__name__ = label
    task.__qualname__ = label
    return task


def idle_task(kernel: Kernel) -> Iterator[None]:
    """Idle task: reports itself once the clock has started."""
    while True:
        if kernel.ticks != 0:
            print(
                f"\n{_RULE}\n" + '-RUNNING "task_idle" <' + "-" * 53
                + f"\nTASK ID: {kernel.task_id()}",
                file=kernel.out,
            )
        yield


def app_main(kernel: Kernel) -> LstfScheduler:
    """Install the LSTF scheduler and spawn the idle task and three periodic tasks."""
    parameters = [
        LstfParameter(computation=3, period=5, deadline=5, slack=2, remaining=3),
        LstfParameter(computation=5, period=10, deadline=10, slack=5, remaining=5),
        LstfParameter(computation=8, period=15, deadline=15, slack=7, remaining=8),
        LstfParameter(computation=1, period=12, deadline=12, slack=11, remaining=1),
    ]
    scheduler = LstfScheduler(kernel, STOP_TIME, KILL_IF_DEADLINE_MISS)
    kernel.rt_sched = scheduler

    idle_id = kernel.spawn(idle_task, DEFAULT_STACK_SIZE)
    kernel.set_priority(idle_id, TaskPriority.IDLE)

    ids = []
    for n in range(3):
        task_id = kernel.spawn(report_task(f"task{n}"), DEFAULT_STACK_SIZE)
        print(f"task {n} id: {task_id}", file=kernel.out)
        ids.append(task_id)

    for task_id, params in zip(ids, parameters):
        kernel.set_rt_priority(task_id, params)
    return scheduler


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run the LSTF task set on the simulated kernel.")
    parser.add_argument("--ticks", type=int, default=100, help="maximum number of ticks")
    parser.add_argument("--stop-time", type=int, default=STOP_TIME, help="tick at which to halt")
    parser.add_argument("--kill-on-miss", action="store_true", help="halt on a deadline miss")
    args = parser.parse_args(argv)

    kernel = Kernel(preemptive=True)
    scheduler = app_main(kernel)
    scheduler.stop_time = args.stop_time
    scheduler.kill_on_miss = args.kill_on_miss
    try:
        kernel.run(args.ticks)
    except KernelPanic as exc:
        print(f"\n*** HALT ({exc.code}) - {exc.message}", file=kernel.out)
        return 1
    return 0