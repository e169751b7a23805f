def test_import_app():
    import newsdesk.main  # noqa: F401


def test_health_reports_dependencies(client, monkeypatch):
    import newsdesk.main

    monkeypatch.setattr(newsdesk.main, "_check_redis", lambda: False)

    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["app"] == "newsdesk"
    assert body["deps"] == {"database": True, "redis": False}
    assert body["ok"] is False
