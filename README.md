# ucxsim

A small simulation of a task kernel with a priority-driven round-robin
scheduler, plus a least-slack-time-first (LSTF) real-time scheduler and a
demonstration task set.

Two modules:

- `ucxsim.kernel`: task control blocks (`Task`), task states
  (`TaskState`), priority classes (`TaskPriority`), real-time parameters
  (`LstfParameter`), the errors, and the `Kernel` itself.
- `ucxsim.rtsched`: `LstfScheduler`, the task builders `report_task` and
  `idle_task`, `app_main` (sets up the demonstration) and `main` (the
  command).

## Installing

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Command line

```
ucxsim [--ticks N] [--stop-time T] [--kill-on-miss]
```

This builds the demonstration task set with `app_main`: an idle task with
`TaskPriority.IDLE` and three periodic tasks (`task0`, `task1`, `task2`)
with computation/period/deadline parameters (3/5/5, 5/10/10, 8/15/15). It
then runs the kernel preemptively, one tick at a time. On each tick the LSTF
scheduler prints the slack calculation for every ready real-time task and
runs the one with the least slack. When no real-time task is ready, the
round-robin scheduler picks the next task, and the idle task runs when
nothing else can.

- `--ticks` is the maximum number of ticks to run (default 100).
- `--stop-time` is the tick at which the scheduler halts with a failure
  report (default 13). The demonstration is meant to end this way.
- `--kill-on-miss` halts on the first missed deadline. Without it, a task
  that misses its deadline is reset at the start of its next period.

When the run halts, the command prints `*** HALT (<code>) - <message>` and
exits with status 1. It exits with 0 if all ticks ran.

## Library use

```python
from ucxsim.kernel import Kernel, LstfParameter, TaskPriority
from ucxsim.rtsched import LstfScheduler, idle_task, report_task

kernel = Kernel(preemptive=True)
kernel.rt_sched = LstfScheduler(kernel, stop_time=13, kill_on_miss=False)

idle_id = kernel.spawn(idle_task)
kernel.set_priority(idle_id, TaskPriority.IDLE)

worker = kernel.spawn(report_task("worker"))
kernel.set_rt_priority(
    worker, LstfParameter(computation=3, period=5, deadline=5, slack=2, remaining=3)
)

kernel.run(10)
```

### Tasks

A task is a callable that takes the kernel. If it returns an iterator
(typically a generator function), each `yield` ends one step, and the task
resumes there the next time it gets the processor. A plain callable is
called once per step. A generator that finishes moves its task to
`TaskState.STOPPED`.

### Task management

The `Kernel` methods are:

- `spawn(func, stack_size=1024)` creates a task and returns its id.
- `cancel(task_id)`
- `delay(ticks)`
- `suspend(task_id)` and `resume(task_id)`
- `set_priority(task_id, priority)`
- `set_rt_priority(task_id, params)` attaches `LstfParameter` values. The task then leaves the round-robin scheduler.
- `task_id()`
- `idref(func)`
- `count()`
- `current_params()`

Every error is a subclass of `KernelError`:

- `TaskNotFoundError`
- `TaskCantRemoveError`, when cancelling the running task
- `TaskCantSuspendError`
- `TaskCantResumeError`
- `InvalidPriorityError`
- `KernelPanic`, for fatal conditions: no tasks, a corrupted stack canary, or an LSTF failure. It has a `code` and a `message`.

### Driving the kernel

- `dispatch()` performs one timer tick. It counts the tick, updates delays, asks `rt_sched` for a task, and falls back to `schedule()`.
- `yield_()` gives up the processor.
- `run(ticks)` repeats `dispatch()` in preemptive mode, or `yield_()` in cooperative mode.

The default `rt_sched` is `noop_rtsched`, which never selects a task. All
output goes to the stream passed as `out` (standard output by default).

## What it does not do

This is a simulation in a single Python thread. No real context switches,
interrupts or timers are involved. Task stacks are byte buffers that only
serve the canary check. There is no wall-clock uptime, and tasks cannot
wait for an interrupt. A tick happens only when `dispatch()` or `run()` is
called.