def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert r.headers["X-Content-Type-Options"] == "nosniff"


def test_health_rate_limit_reports_disabled(client):
    r = client.get("/health/rate-limit")
    assert r.status_code == 200
    assert r.json()["enabled"] is False


def test_health_supabase(client, fake_db):
    assert client.get("/health/supabase").json() == {"ok": True}

    fake_db.fail_next("products", "select", RuntimeError("unreachable"))
    r = client.get("/health/supabase")
    assert r.status_code == 503
    assert r.json() == {"ok": False, "error": "RuntimeError"}
