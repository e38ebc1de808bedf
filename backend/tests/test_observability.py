"""Tests ensuring observability wiring is safe by default."""
from __future__ import annotations

import importlib


def test_app_import_succeeds_when_opik_is_disabled(monkeypatch) -> None:
    monkeypatch.setenv("OPIK_ENABLED", "false")
    monkeypatch.delenv("OPIK_API_KEY", raising=False)

    import app.core.config as core_config
    import app.observability.client as client_module
    import app.main as main_module

    importlib.reload(core_config)
    importlib.reload(client_module)
    reloaded_app = importlib.reload(main_module)

    assert hasattr(reloaded_app, "app")
    assert client_module.init_opik() is None


def test_missing_api_key_leaves_tracing_disabled(monkeypatch) -> None:
    import app.observability.client as client_module

    monkeypatch.setattr(client_module.settings, "opik_enabled", True)
    monkeypatch.setattr(client_module.settings, "opik_api_key", None)
    client_module.reset_opik_client()
    try:
        assert client_module.get_opik_client() is None
    finally:
        client_module.reset_opik_client()


def test_trace_yields_none_when_disabled(monkeypatch) -> None:
    from app.observability import tracing

    monkeypatch.setattr(tracing, "get_opik_client", lambda: None)
    with tracing.trace("plan.generate", metadata={"route": "/api/plan"}) as span:
        assert span is None
    tracing.annotate(span, attempts=1)
