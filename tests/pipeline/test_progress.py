from __future__ import annotations

import logging

from zigd.pipeline.progress import END, START, UPDATE, LoggingProgressListener, ProgressNode


def test_children_track_their_own_counters() -> None:
    root = ProgressNode("zigd build", 2)
    stage = root.start("stage1", 3)
    step = stage.start("ninja install")

    step.set_estimated_total(10)
    step.set_completed(3)
    stage.complete_one()

    assert (step.completed, step.estimated_total) == (3, 10)
    assert (stage.completed, stage.estimated_total) == (1, 3)
    assert (root.completed, root.estimated_total) == (0, 2)
    assert step.path == "zigd build / stage1 / ninja install"


def test_context_manager_ends_node() -> None:
    root = ProgressNode("root")
    with root.start("cmake") as step:
        assert not step.ended

    assert step.ended
    assert root.snapshot()["children"][0]["ended"] is True


def test_counters_never_go_negative() -> None:
    node = ProgressNode("root", -4)
    node.set_completed(-1)
    node.increase_estimated_total(-3)

    assert node.estimated_total == 0
    assert node.completed == 0


def test_listener_on_root_sees_descendants() -> None:
    seen: list[tuple[str, int, int]] = []
    root = ProgressNode(
        "root", listener=lambda n, event: seen.append((n.name, n.completed, n.estimated_total))
    )

    child = root.start("bootstrap")
    child.set_estimated_total(5)
    child.set_completed(2)

    assert seen[-1] == ("bootstrap", 2, 5)
    assert ("bootstrap", 0, 0) in seen


def test_logging_listener_throttles_counter_updates(caplog) -> None:
    now = [0.0]
    logger = logging.getLogger("zigd.test.progress")
    listener = LoggingProgressListener(logger, interval=5.0, clock=lambda: now[0])
    root = ProgressNode("root", listener=listener)

    with caplog.at_level(logging.INFO, logger="zigd.test.progress"):
        step = root.start("ninja install")
        step.set_estimated_total(100)
        for done in range(1, 50):
            step.set_completed(done)
        now[0] = 6.0
        step.set_completed(50)
        step.end()

    messages = [record.getMessage() for record in caplog.records]
    assert messages[0] == "root / ninja install"
    assert "root / ninja install [50/100]" in messages
    assert messages[-1] == "root / ninja install done"
    assert len(messages) == 3


def test_logging_listener_always_logs_starts(caplog) -> None:
    now = [0.0]
    logger = logging.getLogger("zigd.test.progress.start")
    listener = LoggingProgressListener(logger, interval=60.0, clock=lambda: now[0])
    root = ProgressNode("stage1", listener=listener)

    with caplog.at_level(logging.INFO, logger="zigd.test.progress.start"):
        with root.start("rm -rf", 2) as step:
            step.complete_one()
            step.complete_one()
        root.start("cmake", 1)

    messages = [record.getMessage() for record in caplog.records]
    assert messages == [
        "stage1 / rm -rf [0/2]",
        "stage1 / rm -rf done",
        "stage1 / cmake [0/1]",
    ]


def test_listener_receives_event_kinds() -> None:
    events: list[tuple[str, str]] = []
    root = ProgressNode("root", listener=lambda n, event: events.append((n.name, event)))

    with root.start("git pull", 1) as step:
        step.complete_one()

    assert events == [("git pull", START), ("git pull", UPDATE), ("git pull", END)]
