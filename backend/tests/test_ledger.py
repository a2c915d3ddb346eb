"""Tests for the in-memory run ledger."""

import threading

import pytest

from vidcast.orchestrator.errors import ConcurrentRunError, LedgerInvariantError
from vidcast.orchestrator.ledger import RunLedger
from vidcast.orchestrator.models import RunStatus, StepStatus, Trigger


def _running_run(ledger, trigger=Trigger.MANUAL, topic=None):
    run = ledger.create_run(trigger, topic)
    ledger.mark_running(run.id)
    return run.id


def _finished_run(ledger, status=RunStatus.SUCCESS):
    run_id = _running_run(ledger)
    ledger.append_step(run_id, "script")
    step_status = StepStatus.SUCCESS if status == RunStatus.SUCCESS else StepStatus.ERROR
    error = "boom" if step_status == StepStatus.ERROR else None
    ledger.update_step(run_id, "script", step_status, error=error)
    ledger.finalize_run(run_id, status)
    return run_id


class TestCreateRun:
    def test_new_run_is_pending_with_no_steps(self, ledger, clock):
        run = ledger.create_run(Trigger.CRON, "topic")
        assert run.status == RunStatus.PENDING
        assert run.trigger == Trigger.CRON
        assert run.topic == "topic"
        assert run.steps == ()
        assert run.completed_at is None
        assert run.started_at == clock.now

    def test_ids_are_unique(self, ledger):
        first = _finished_run(ledger)
        second = _finished_run(ledger)
        assert first != second

    def test_second_run_rejected_while_one_is_in_flight(self, ledger):
        active = ledger.create_run(Trigger.MANUAL)
        with pytest.raises(ConcurrentRunError) as exc_info:
            ledger.create_run(Trigger.CRON)
        assert exc_info.value.active_run_id == active.id
        assert len(ledger) == 1

    def test_new_run_allowed_once_previous_is_terminal(self, ledger):
        _finished_run(ledger, RunStatus.ERROR)
        run = ledger.create_run(Trigger.CLI)
        assert run.status == RunStatus.PENDING
        assert len(ledger) == 2

    def test_racing_threads_create_exactly_one_run(self, ledger):
        barrier = threading.Barrier(8)
        outcomes = []

        def attempt():
            barrier.wait()
            try:
                ledger.create_run(Trigger.MANUAL)
                outcomes.append("created")
            except ConcurrentRunError:
                outcomes.append("rejected")

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("created") == 1
        assert len(ledger.list_runs()) == 1


class TestStepUpdates:
    def test_append_and_complete_step(self, ledger):
        run_id = _running_run(ledger)
        record = ledger.append_step(run_id, "script")
        assert record.status == StepStatus.RUNNING
        assert record.completed_at is None

        done = ledger.update_step(
            run_id, "script", StepStatus.SUCCESS,
            meta={"sceneCount": 4},
            results={"video_title": "Title"},
        )
        assert done.status == StepStatus.SUCCESS
        assert done.completed_at > done.started_at
        assert done.meta == {"sceneCount": 4}

        run = ledger.get_run(run_id)
        assert run.video_title == "Title"
        assert run.steps == (done,)

    def test_failed_step_carries_error(self, ledger):
        run_id = _running_run(ledger)
        ledger.append_step(run_id, "render")
        record = ledger.update_step(run_id, "render", StepStatus.ERROR, error="render timeout")
        assert record.error == "render timeout"
        assert record.completed_at is not None

    def test_error_message_only_on_failed_steps(self, ledger):
        run_id = _running_run(ledger)
        ledger.append_step(run_id, "script")
        with pytest.raises(LedgerInvariantError):
            ledger.update_step(run_id, "script", StepStatus.SUCCESS, error="nope")

    def test_step_status_never_regresses(self, ledger):
        run_id = _running_run(ledger)
        ledger.append_step(run_id, "script")
        ledger.update_step(run_id, "script", StepStatus.SUCCESS)
        with pytest.raises(LedgerInvariantError):
            ledger.update_step(run_id, "script", StepStatus.RUNNING)
        with pytest.raises(LedgerInvariantError):
            ledger.update_step(run_id, "script", StepStatus.ERROR, error="late")

    def test_cannot_append_while_previous_step_open(self, ledger):
        run_id = _running_run(ledger)
        ledger.append_step(run_id, "script")
        with pytest.raises(LedgerInvariantError):
            ledger.append_step(run_id, "render")

    def test_cannot_append_to_pending_run(self, ledger):
        run = ledger.create_run(Trigger.MANUAL)
        with pytest.raises(LedgerInvariantError):
            ledger.append_step(run.id, "script")

    def test_steps_keep_execution_order(self, ledger):
        run_id = _running_run(ledger)
        for name in ("script", "render", "upload"):
            ledger.append_step(run_id, name)
            ledger.update_step(run_id, name, StepStatus.SUCCESS)
        assert [s.name for s in ledger.get_run(run_id).steps] == ["script", "render", "upload"]

    def test_unknown_result_field_rejected(self, ledger):
        run_id = _running_run(ledger)
        ledger.append_step(run_id, "script")
        with pytest.raises(LedgerInvariantError):
            ledger.update_step(run_id, "script", StepStatus.SUCCESS, results={"status": "success"})

    def test_unknown_run_raises_key_error(self, ledger):
        with pytest.raises(KeyError):
            ledger.append_step("missing", "script")


class TestFinalize:
    def test_success_requires_all_steps_successful(self, ledger):
        run_id = _running_run(ledger)
        ledger.append_step(run_id, "script")
        ledger.update_step(run_id, "script", StepStatus.ERROR, error="boom")
        with pytest.raises(LedgerInvariantError):
            ledger.finalize_run(run_id, RunStatus.SUCCESS)

    def test_error_requires_a_failed_step(self, ledger):
        run_id = _running_run(ledger)
        ledger.append_step(run_id, "script")
        ledger.update_step(run_id, "script", StepStatus.SUCCESS)
        with pytest.raises(LedgerInvariantError):
            ledger.finalize_run(run_id, RunStatus.ERROR)

    def test_cannot_finalize_with_open_step(self, ledger):
        run_id = _running_run(ledger)
        ledger.append_step(run_id, "script")
        with pytest.raises(LedgerInvariantError):
            ledger.finalize_run(run_id, RunStatus.SUCCESS)

    def test_completed_at_set_on_terminal_transition(self, ledger):
        run_id = _finished_run(ledger)
        run = ledger.get_run(run_id)
        assert run.status == RunStatus.SUCCESS
        assert run.completed_at > run.started_at

    def test_terminal_runs_are_immutable(self, ledger):
        run_id = _finished_run(ledger)
        with pytest.raises(LedgerInvariantError):
            ledger.append_step(run_id, "render")
        with pytest.raises(LedgerInvariantError):
            ledger.update_step(run_id, "script", StepStatus.ERROR, error="late")
        with pytest.raises(LedgerInvariantError):
            ledger.finalize_run(run_id, RunStatus.ERROR)
        with pytest.raises(LedgerInvariantError):
            ledger.mark_running(run_id)

    def test_non_terminal_status_rejected(self, ledger):
        run_id = _running_run(ledger)
        with pytest.raises(LedgerInvariantError):
            ledger.finalize_run(run_id, RunStatus.RUNNING)


class TestQueries:
    def test_list_runs_most_recent_first(self, ledger):
        ids = [_finished_run(ledger) for _ in range(3)]
        assert [run.id for run in ledger.list_runs()] == list(reversed(ids))

    def test_reads_are_idempotent(self, ledger):
        _finished_run(ledger)
        _running_run(ledger)
        assert ledger.list_runs() == ledger.list_runs()

    def test_returned_snapshots_do_not_alias_ledger_state(self, ledger):
        run_id = _running_run(ledger)
        ledger.append_step(run_id, "script")
        ledger.update_step(run_id, "script", StepStatus.SUCCESS, meta={"sceneCount": 3})

        snapshot = ledger.get_run(run_id)
        snapshot.steps[0].meta["sceneCount"] = 99

        assert ledger.get_run(run_id).steps[0].meta == {"sceneCount": 3}

    def test_get_unknown_run_returns_none(self, ledger):
        assert ledger.get_run("nope") is None

    def test_active_run(self, ledger):
        assert ledger.active_run() is None
        run_id = _running_run(ledger)
        assert ledger.active_run().id == run_id


class TestRetention:
    def test_oldest_terminal_runs_evicted_beyond_cap(self, clock):
        ledger = RunLedger(max_runs=2, clock=clock)
        ids = [_finished_run(ledger) for _ in range(4)]
        assert [run.id for run in ledger.list_runs()] == [ids[3], ids[2]]
        assert ledger.get_run(ids[0]) is None

    def test_in_flight_run_never_evicted(self, clock):
        ledger = RunLedger(max_runs=1, clock=clock)
        _finished_run(ledger)
        active_id = _running_run(ledger)
        assert ledger.get_run(active_id) is not None

    def test_invalid_cap_rejected(self):
        with pytest.raises(ValueError):
            RunLedger(max_runs=0)


def test_concurrent_readers_never_see_torn_records():
    ledger = RunLedger()
    stop = threading.Event()
    violations = []

    def reader():
        while not stop.is_set():
            for run in ledger.list_runs():
                terminal = run.status in (RunStatus.SUCCESS, RunStatus.ERROR)
                if terminal != (run.completed_at is not None):
                    violations.append(("run", run.id))
                for step in run.steps:
                    done = step.status in (StepStatus.SUCCESS, StepStatus.ERROR)
                    if done != (step.completed_at is not None):
                        violations.append(("step", step.name))
                    if (step.error is not None) != (step.status == StepStatus.ERROR):
                        violations.append(("error", step.name))

    readers = [threading.Thread(target=reader) for _ in range(3)]
    for t in readers:
        t.start()
    try:
        for i in range(50):
            run_id = _running_run(ledger)
            for name in ("script", "render", "upload"):
                ledger.append_step(run_id, name)
                if i % 3 == 0 and name == "render":
                    ledger.update_step(run_id, name, StepStatus.ERROR, error="boom")
                    break
                ledger.update_step(run_id, name, StepStatus.SUCCESS, meta={"i": i})
            status = RunStatus.ERROR if i % 3 == 0 else RunStatus.SUCCESS
            ledger.finalize_run(run_id, status)
    finally:
        stop.set()
        for t in readers:
            t.join()

    assert violations == []
    assert len(ledger) == 50
