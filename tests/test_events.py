from __future__ import annotations

import logging
import threading

from mastering_engine.application.event_publisher import CompositeEventPublisher, NullEventPublisher
from mastering_engine.application.notifications import NotificationDispatcher
from mastering_engine.domain.events import JobProgress, JobQueued, event_to_dict
from mastering_engine.infrastructure.client_channels import ClientChannelPublisher, ClientRegistry
from mastering_engine.infrastructure.logging_event_publisher import LoggingEventPublisher


class RecordingPublisher:
    def __init__(self) -> None:
        self.events = []
        self.threads = []

    def publish(self, event) -> None:
        self.events.append(event)
        self.threads.append(threading.current_thread().name)


class ExplodingPublisher:
    def publish(self, event) -> None:
        raise RuntimeError("transport down")


def _event(index: int = 0) -> JobProgress:
    return JobProgress(correlation_id="req-1", client_id="client-1", payload_summary={"progress": float(index)})


def test_event_to_dict_shape():
    payload = event_to_dict(_event(3))

    assert payload["event"] == "JobProgress"
    assert payload["correlation_id"] == "req-1"
    assert payload["client_id"] == "client-1"
    assert payload["payload"] == {"progress": 3.0}
    assert payload["occurred_at"].endswith("+00:00")


def test_logging_event_publisher_emits_structured_record(caplog):
    caplog.set_level(logging.INFO, logger="mastering_engine.events")

    LoggingEventPublisher().publish(_event())

    record = caplog.records[-1]
    assert record.getMessage() == "domain_event_emitted"
    assert record.event_name == "JobProgress"
    assert record.correlation_id == "req-1"


def test_composite_publisher_fans_out_in_order():
    first, second = RecordingPublisher(), RecordingPublisher()

    CompositeEventPublisher([first, NullEventPublisher(), second]).publish(_event())

    assert len(first.events) == len(second.events) == 1


def test_client_channel_only_reaches_connected_clients():
    clients = ClientRegistry()
    delivered = []
    publisher = ClientChannelPublisher(clients, lambda client_id, payload: delivered.append((client_id, payload)))

    publisher.publish(_event())
    clients.connect("client-1")
    publisher.publish(_event(1))
    publisher.publish(JobQueued(correlation_id="req-2", payload_summary={}))
    clients.disconnect("client-1")
    publisher.publish(_event(2))

    assert [(client_id, payload["payload"]["progress"]) for client_id, payload in delivered] == [("client-1", 1.0)]


def test_dispatcher_preserves_order_on_its_own_thread():
    recorder = RecordingPublisher()
    dispatcher = NotificationDispatcher(recorder)
    dispatcher.start()
    try:
        for index in range(50):
            dispatcher.submit(_event(index))
        dispatcher.flush(timeout=5.0)
    finally:
        dispatcher.stop(timeout=5.0)

    assert [event.payload_summary["progress"] for event in recorder.events] == [float(i) for i in range(50)]
    assert set(recorder.threads) == {"mastering-engine-dispatcher"}
    assert not dispatcher.running


def test_dispatcher_logs_and_survives_publisher_errors(caplog):
    dispatcher = NotificationDispatcher(ExplodingPublisher())

    with caplog.at_level(logging.ERROR, logger="mastering_engine.dispatcher"):
        dispatcher.submit(_event())

    assert any(record.getMessage() == "event_delivery_failed" for record in caplog.records)
