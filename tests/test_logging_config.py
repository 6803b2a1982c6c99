"""
Tests for kaizen_gate/core/logging_config.py - formatters and request ids.
"""
import json
import logging

import pytest
from sqlalchemy import select

from tests.utils.licenses import ACME_LICENSE


def _record(**extra):
    record = logging.LogRecord("kaizen.test", logging.WARNING, __file__, 1, "locked %s", ("ACME",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_core_fields(self):
        from kaizen_gate.core.logging_config import JSONFormatter

        entry = json.loads(JSONFormatter("kaizen-edge").format(_record()))

        assert entry["service"] == "kaizen-edge"
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "kaizen.test"
        assert entry["message"] == "locked ACME"
        assert entry["timestamp"].endswith("Z")
        assert "request_id" not in entry

    def test_request_context_is_included(self):
        from kaizen_gate.core.logging_config import JSONFormatter

        entry = json.loads(JSONFormatter("kaizen-auth").format(
            _record(request_id="abc123", status=401, unrelated="dropped")
        ))

        assert entry["request_id"] == "abc123"
        assert entry["status"] == 401
        assert "unrelated" not in entry


class TestResolveRequestId:

    def test_reuses_wellformed_inbound_id(self):
        from kaizen_gate.core.logging_config import resolve_request_id

        scope = {"headers": [(b"x-request-id", b"edge-req-42")]}

        assert resolve_request_id(scope) == "edge-req-42"

    @pytest.mark.parametrize("inbound", [b"has space", b"x" * 65, b"line\nbreak"])
    def test_replaces_malformed_inbound_id(self, inbound):
        from kaizen_gate.core.logging_config import resolve_request_id

        request_id = resolve_request_id({"headers": [(b"x-request-id", inbound)]})

        assert request_id != inbound.decode("latin-1")
        assert len(request_id) == 12


class TestRequestLoggingMiddleware:

    @pytest.mark.asyncio
    async def test_response_carries_request_id(self, auth_client):
        response = await auth_client.get("/health")

        assert len(response.headers["x-request-id"]) == 12

    @pytest.mark.asyncio
    async def test_edge_request_id_reaches_login_audit(self, edge_client, seeded, database):
        """The id on the edge's response is the one stored with the audit row."""
        from kaizen_gate.models.login_audit import LoginAudit

        response = await edge_client.post("/auth/license/login", json={"license": ACME_LICENSE})

        assert response.status_code == 200
        async with database.session() as db:
            row = (await db.execute(select(LoginAudit))).scalar_one()
        assert row.edge_request_id == response.headers["x-request-id"]
