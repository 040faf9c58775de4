from __future__ import annotations

import io
import json

from sender_control.audit import InMemoryAuditStore, JsonAuditLogger


def test_events_are_written_as_json_and_mirrored():
    stream = io.StringIO()
    store = InMemoryAuditStore(max_events=2)
    logger = JsonAuditLogger(name="sender_control.tests.audit", store=store, stream=stream)

    logger.info("scope_created", tenant_id="t", run_id="r", scope="AllowedSendersScope")
    logger.warning("probe_result", run_id="r", passed=False)
    logger.info("run_completed", run_id="r")

    first = json.loads(stream.getvalue().splitlines()[0])
    assert first["event"] == "scope_created"
    assert first["scope"] == "AllowedSendersScope"
    assert first["run_id"] == "r"

    assert store.messages() == ["probe_result", "run_completed"]
    latest = store.list(limit=1)[0]
    assert latest.run_id == "r"
    assert latest.tenant_id is None


def test_bound_logger_stamps_context_on_every_event():
    stream = io.StringIO()
    store = InMemoryAuditStore()
    logger = JsonAuditLogger(name="sender_control.tests.bound", store=store, stream=stream)

    bound = logger.bind(tenant_id="tenant", run_id="run-7").bind(step="ensure_scope", ignored=None)
    bound.info("scope_created", scope="S")
    logger.info("unbound")

    event = store.list(limit=2)[1]
    assert (event.tenant_id, event.run_id) == ("tenant", "run-7")
    assert event.extra == {"step": "ensure_scope", "scope": "S"}
    assert json.loads(stream.getvalue().splitlines()[0])["run_id"] == "run-7"
    assert store.messages(run_id="run-7") == ["scope_created"]
    assert logger.context == {}
