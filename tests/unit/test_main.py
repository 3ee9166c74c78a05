"""
Unit tests for the process entry point.
"""

import asyncio
import logging

import pytest
import uvicorn

from ledger.txnstream import main as entry


@pytest.fixture(autouse=True)
def isolate_process_state(monkeypatch):
    for name in ["LISTEN_ADDR", "STORE_BACKEND", "DATA_DIR", "LOG_LEVEL", "LOG_FORMAT"]:
        monkeypatch.delenv(name, raising=False)

    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    asyncio.set_event_loop(None)


class TestMain:
    """Tests for main()."""

    def test_serves_configured_address(self, monkeypatch):
        """main() hands the configured address to uvicorn and returns when serving ends."""
        served = []

        async def fake_serve(self, sockets=None):
            served.append(self.config)

        monkeypatch.setattr(uvicorn.Server, "serve", fake_serve)
        monkeypatch.setenv("LISTEN_ADDR", "127.0.0.1:9100")
        monkeypatch.setenv("STORE_BACKEND", "MEMORY")

        entry.main()

        assert len(served) == 1
        assert served[0].host == "127.0.0.1"
        assert served[0].port == 9100
        assert served[0].lifespan == "on"

    def test_config_error_exits_nonzero(self, monkeypatch, capsys):
        """An invalid environment is reported on stderr with exit code 1."""
        monkeypatch.setenv("STORE_BACKEND", "rocksdb")

        with pytest.raises(SystemExit) as exc_info:
            entry.main()

        assert exc_info.value.code == 1
        assert "Configuration error" in capsys.readouterr().err
