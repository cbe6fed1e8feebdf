import io

import pytest

from ucxsim.kernel import Kernel, KernelPanic, LstfParameter, TaskPriority, TaskState
from ucxsim.rtsched import LstfScheduler, app_main, idle_task, main, report_task


def _kernel_with(params_list, stop_time=1000, kill_on_miss=False):
    kernel = Kernel(preemptive=True, out=io.StringIO())
    idle_id = kernel.spawn(idle_task)
    kernel.set_priority(idle_id, TaskPriority.IDLE)
    ids = []
    for n, params in enumerate(params_list):
        task_id = kernel.spawn(report_task(f"rt{n}"))
        kernel.set_rt_priority(task_id, params)
        ids.append(task_id)
    kernel.rt_sched = LstfScheduler(kernel, stop_time, kill_on_miss)
    return kernel, idle_id, ids


def test_scheduler_defaults():
    kernel = Kernel(out=io.StringIO())
    sched = LstfScheduler(kernel)
    assert sched.stop_time == 13
    assert sched.kill_on_miss is False


def test_app_main_first_tick_selects_task0():
    kernel = Kernel(out=io.StringIO())
    app_main(kernel)
    kernel.dispatch()
    assert kernel.current.id == 1
    params = kernel.current.rt_prio
    assert params.remaining == params.computation - 1


def test_app_main_spawns_idle_and_three_rt_tasks():
    kernel = Kernel(out=io.StringIO())
    scheduler = app_main(kernel)
    assert kernel.rt_sched is scheduler
    assert kernel.count() == 4
    assert kernel.tasks[0].priority == TaskPriority.IDLE
    assert all(t.rt_prio is not None for t in kernel.tasks[1:])


def test_first_tick_slack_is_deadline_minus_computation():
    params = LstfParameter(computation=2, period=4, deadline=4, slack=0, remaining=2)
    kernel, _, ids = _kernel_with([params])
    kernel.dispatch()
    assert kernel.current.id == ids[0]
    assert params.slack == params.deadline - params.computation


def test_least_slack_wins_regardless_of_order():
    loose = LstfParameter(computation=1, period=10, deadline=10, slack=0, remaining=1)
    tight = LstfParameter(computation=4, period=5, deadline=5, slack=0, remaining=4)
    kernel, _, ids = _kernel_with([loose, tight])
    selected = kernel.rt_sched()
    kernel.ticks = 1
    selected = kernel.rt_sched()
    assert selected == ids[1]
    assert kernel.current.state == TaskState.RUNNING


def test_task_runs_computation_times_then_idle():
    params = LstfParameter(computation=3, period=5, deadline=5, slack=2, remaining=3)
    kernel, idle_id, ids = _kernel_with([params])
    chosen = []
    for _ in range(5):
        kernel.dispatch()
        chosen.append(kernel.current.id)
    assert chosen.count(ids[0]) == params.computation
    assert chosen[params.computation:] == [idle_id] * (5 - params.computation)
    assert params.remaining == 0


def test_task_restarts_next_period():
    params = LstfParameter(computation=1, period=3, deadline=3, slack=2, remaining=1)
    kernel, idle_id, ids = _kernel_with([params])
    chosen = []
    for _ in range(4):
        kernel.dispatch()
        chosen.append(kernel.current.id)
    assert chosen[0] == ids[0]
    assert chosen[1] == idle_id
    assert chosen[3] == ids[0]


def test_no_rt_task_returns_none():
    kernel = Kernel(out=io.StringIO())
    kernel.spawn(idle_task)
    kernel.rt_sched = LstfScheduler(kernel)
    kernel.ticks = 1
    assert kernel.rt_sched() is None


def test_stop_time_panics():
    params = LstfParameter(computation=5, period=10, deadline=10, slack=5, remaining=5)
    kernel, _, _ = _kernel_with([params], stop_time=2)
    kernel.dispatch()
    with pytest.raises(KernelPanic) as info:
        kernel.dispatch()
    assert info.value.code == "ERR_LSF_FAIL"


def test_kill_on_miss_panics_on_negative_slack():
    params = LstfParameter(computation=4, period=10, deadline=2, slack=0, remaining=4)
    kernel, _, _ = _kernel_with([params], kill_on_miss=True)
    with pytest.raises(KernelPanic) as info:
        kernel.dispatch()
    assert info.value.code == "ERR_LSF_FAIL"


def test_deadline_miss_reported_without_kill():
    params = LstfParameter(computation=4, period=10, deadline=2, slack=0, remaining=4)
    kernel, _, _ = _kernel_with([params])
    kernel.dispatch()
    assert "DEADLINEMISS" in kernel.out.getvalue()


def test_report_task_prints_label_and_params():
    params = LstfParameter(computation=2, period=4, deadline=4, slack=0, remaining=2)
    kernel, _, ids = _kernel_with([params])
    kernel.dispatch()
    text = kernel.out.getvalue()
    assert '"rt0"' in text
    assert f"|TASK ID: {ids[0]} | " in text
    assert "Comp.: 2 | Per.: 4 |" in text


def test_report_task_without_params():
    kernel = Kernel(out=io.StringIO())
    kernel.spawn(report_task("plain"))
    kernel.dispatch()
    assert "Parameters unavailable" in kernel.out.getvalue()


def test_idle_task_silent_before_first_tick():
    kernel = Kernel(out=io.StringIO())
    kernel.spawn(idle_task)
    kernel.current = kernel.tasks[0]
    gen = idle_task(kernel)
    start = kernel.out.getvalue()
    next(gen)
    assert kernel.out.getvalue() == start
    kernel.ticks = 1
    next(gen)
    assert "task_idle" in kernel.out.getvalue()


def test_main_halts_at_stop_time(capsys):
    code = main(["--ticks", "30", "--stop-time", "5"])
    out = capsys.readouterr().out
    assert code == 1
    assert "HALT (ERR_LSF_FAIL)" in out


def test_main_without_halt_returns_zero(capsys):
    code = main(["--ticks", "2"])
    out = capsys.readouterr().out
    assert code == 0
    assert "HALT" not in out