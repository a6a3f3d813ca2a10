from fastapi.testclient import TestClient

from backend.app.main import (
    DEFAULT_ALLOWED_ORIGINS,
    _resolve_allowed_origins,
    _split_raw_origins,
    app,
)


def test_split_raw_origins_accepts_commas_and_whitespace():
    raw = "http://localhost:5173, http://127.0.0.1:5173 http://0.0.0.0:5173"
    assert _split_raw_origins(raw) == [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://0.0.0.0:5173",
    ]


def test_resolve_allowed_origins_reads_env_and_strips_trailing_slash(monkeypatch):
    monkeypatch.setenv(
        "BACKEND_ALLOWED_ORIGINS",
        "https://declarations.example/ https://admin.declarations.example",
    )

    assert _resolve_allowed_origins() == [
        "https://admin.declarations.example",
        "https://declarations.example",
    ]


def test_resolve_allowed_origins_falls_back_to_local_defaults(monkeypatch):
    monkeypatch.setenv("BACKEND_ALLOWED_ORIGINS", " , ")

    assert _resolve_allowed_origins() == sorted(DEFAULT_ALLOWED_ORIGINS)


def test_upload_endpoint_includes_cors_headers_for_local_dev_origin():
    client = TestClient(app)
    origin = "http://localhost:5173"

    response = client.options(
        "/comptable/upload",
        headers={
            "Origin": origin,
            "Access-Control-Request-Method": "POST",
        },
    )

    assert response.status_code == 200
    assert response.headers.get("access-control-allow-origin") == origin
