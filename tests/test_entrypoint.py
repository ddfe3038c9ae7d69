# tests/test_entrypoint.py
import entrypoint


def test_main_runs_app_behind_proxy_with_pings(monkeypatch):
    calls = []
    monkeypatch.setattr(entrypoint.uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))

    entrypoint.main()

    [(target, kwargs)] = calls
    assert target == "app:app"
    assert kwargs["proxy_headers"] is True
    assert kwargs["ws_ping_interval"] > 0
    assert kwargs["ws_ping_timeout"] > 0
    # our own logging setup stays in charge
    assert kwargs["log_config"] is None
