"""
tests/test_notify.py — Event Emitter Tests
===========================================
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from agora.engine.notify import CallbackEmitter, NullEmitter, PgNotifyEmitter


class TestNullEmitter:
    def test_accepts_known_kinds(self):
        NullEmitter().emit("newThread", {"id": 1})

    def test_rejects_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown event kind"):
            NullEmitter().emit("boardDeleted", {})


class TestCallbackEmitter:
    def test_sync_callbacks_receive_payload(self):
        emitter = CallbackEmitter()
        received = []
        emitter.register("newAnswer", received.append)
        emitter.emit("newAnswer", {"id": 7})
        emitter.emit("newThread", {"id": 8})
        assert received == [{"id": 7}]

    def test_unregister(self):
        emitter = CallbackEmitter()
        received = []
        emitter.register("newThread", received.append)
        emitter.unregister("newThread", received.append)
        emitter.emit("newThread", {"id": 1})
        assert received == []

    def test_async_callback_runs_on_registered_loop(self):
        emitter = CallbackEmitter()
        received = []

        async def on_thread(payload):
            received.append(payload)

        async def main():
            emitter.register("newThread", on_thread, loop=asyncio.get_running_loop())
            await asyncio.to_thread(emitter.emit, "newThread", {"id": 3})
            for _ in range(50):
                if received:
                    break
                await asyncio.sleep(0.01)

        asyncio.run(main())
        assert received == [{"id": 3}]

    def test_async_callback_without_loop_is_skipped(self, caplog):
        emitter = CallbackEmitter()

        async def on_thread(payload):  # pragma: no cover
            raise AssertionError("should not run")

        emitter.register("newThread", on_thread)
        emitter.emit("newThread", {"id": 1})
        assert "no event loop available" in caplog.text


class TestPgNotifyEmitter:
    def _emit(self, payload):
        engine = MagicMock()
        conn = engine.connect.return_value.__enter__.return_value
        PgNotifyEmitter(engine).emit("newThread", payload)
        params = conn.execute.call_args.args[1]
        conn.commit.assert_called_once()
        return params

    def test_payload_is_wrapped_json(self):
        params = self._emit({"id": 5, "title": "Hi"})
        assert params["channel"] == "forum_events"
        assert json.loads(params["payload"]) == {
            "type": "newThread", "data": {"id": 5, "title": "Hi"},
        }

    def test_oversized_payload_is_reduced_to_id(self):
        params = self._emit({"id": 9, "body": "x" * 9000})
        assert json.loads(params["payload"]) == {
            "type": "newThread", "data": {"id": 9}, "truncated": True,
        }
