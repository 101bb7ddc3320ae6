from fastapi.testclient import TestClient

from conftest import actions
from quicklinks import database
from quicklinks.main import app


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_create_link_with_custom_code(client):
    response = client.post("/links", json={"originalUrl": "https://example.com", "customCode": "docs"})

    assert response.status_code == 201
    body = response.json()
    assert body["shortCode"] == "docs"
    assert body["isCustomCode"] is True
    assert body["clickCount"] == 0
    assert body["clickHistory"] == []
    assert body["shortUrl"].endswith("/docs")


def test_create_link_errors(client):
    client.post("/links", json={"originalUrl": "https://example.com", "customCode": "docs"})

    taken = client.post("/links", json={"originalUrl": "https://x.com", "customCode": "docs"})
    bad_code = client.post("/links", json={"originalUrl": "https://x.com", "customCode": "no"})
    bad_url = client.post("/links", json={"originalUrl": "example"})

    assert taken.status_code == 409
    assert taken.json()["detail"] == "Custom shortcode already exists"
    assert bad_code.status_code == 400
    assert bad_url.status_code == 400
    assert bad_url.json()["detail"] == "Invalid URL format"


def test_list_and_get_links(client):
    client.post("/links", json={"originalUrl": "https://example.com/1", "customCode": "one"})
    client.post("/links", json={"originalUrl": "https://example.com/2", "customCode": "two"})

    listing = client.get("/links").json()
    assert [item["shortCode"] for item in listing] == ["two", "one"]

    assert client.get("/links/one").json()["originalUrl"] == "https://example.com/1"
    assert client.get("/links/zzz").status_code == 404


def test_record_click_endpoint(client):
    client.post("/links", json={"originalUrl": "https://example.com", "customCode": "docs"})

    response = client.post("/links/docs/clicks", json={"userAgent": "UA", "referrer": "https://ref.example"})
    assert response.status_code == 200
    assert response.json() == {"ok": True, "clickCount": 1}

    assert client.post("/links/docs/clicks").json()["clickCount"] == 2
    assert client.post("/links/nope/clicks").status_code == 404

    history = client.get("/links/docs").json()["clickHistory"]
    assert history[0]["userAgent"] == "UA"
    assert history[1]["userAgent"] is None


def test_redirect_records_click(client, registry, event_log):
    client.post("/links", json={"originalUrl": "https://example.com/landing", "customCode": "docs"})

    response = client.get(
        "/r/docs",
        headers={"User-Agent": "pytest-agent", "Referer": "https://ref.example"},
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert response.headers["location"] == "https://example.com/landing"
    [click] = registry.lookup("docs").click_history
    assert click.user_agent == "pytest-agent"
    assert click.referrer == "https://ref.example"
    assert "REDIRECT_PAGE_ACCESS" in actions(event_log)


def test_redirect_short_alias(client, registry):
    client.post("/links", json={"originalUrl": "https://example.com/landing", "customCode": "landing"})

    response = client.get("/landing", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"] == "https://example.com/landing"
    assert registry.lookup("landing").click_count == 1


def test_reserved_word_codes_resolve_under_r(client, registry):
    for code in ("stats", "links", "docs"):
        created = client.post("/links", json={"originalUrl": f"https://example.com/{code}", "customCode": code})
        assert created.json()["shortUrl"].endswith(f"/r/{code}")

        response = client.get(f"/r/{code}", follow_redirects=False)
        assert response.status_code == 307
        assert response.headers["location"] == f"https://example.com/{code}"
        assert registry.lookup(code).click_count == 1

    # the app's own pages still win on the short alias
    assert client.get("/stats").json()["totalUrls"] == 3
    assert client.get("/links").status_code == 200


def test_redirect_unknown_or_reserved(client, event_log):
    assert client.get("/nope", follow_redirects=False).status_code == 404
    assert client.get("/a-b", follow_redirects=False).status_code == 404
    assert client.get("/r/nope", follow_redirects=False).status_code == 404

    [latest, *_] = event_log.query(level="WARN")
    assert latest.action == "REDIRECT_NOT_FOUND"
    assert latest.context == {"shortCode": "nope"}


def test_delete_link(client):
    client.post("/links", json={"originalUrl": "https://example.com", "customCode": "docs"})

    assert client.delete("/links/docs").json() == {"ok": True, "detail": "Link 'docs' deleted"}
    assert client.delete("/links/docs").status_code == 404
    assert client.get("/links/docs").status_code == 404


def test_stats(client):
    for code, clicks in (("one", 2), ("two", 0), ("three", 1)):
        client.post("/links", json={"originalUrl": "https://example.com", "customCode": code})
        for _ in range(clicks):
            client.post(f"/links/{code}/clicks")

    stats = client.get("/stats").json()

    assert stats["totalUrls"] == 3
    assert stats["totalClicks"] == 3
    assert [item["shortCode"] for item in stats["topUrls"]] == ["one", "three"]
    assert [item["shortCode"] for item in stats["recentActivity"]] == ["three", "one"]


def test_logs_query_summary_and_clear(client):
    client.post("/links", json={"originalUrl": "bad"})

    warnings = client.get("/logs", params={"level": "WARN"}).json()
    assert [entry["action"] for entry in warnings] == ["INVALID_URL"]
    assert client.get("/logs", params={"q": "shortening"}).json()[0]["action"] == "SHORTEN_REQUEST"
    assert client.get("/logs", params={"level": "LOUD"}).status_code == 422

    summary = client.get("/logs/summary").json()
    assert summary["levels"]["WARN"] == 1
    assert summary["total"] == sum(summary["levels"].values())

    assert client.delete("/logs").json()["ok"] is True
    [entry] = client.get("/logs").json()
    assert entry["action"] == "CLEAR_LOGS"


def test_logs_export(client, event_log):
    response = client.get("/logs/export")

    assert response.status_code == 200
    assert "attachment" in response.headers["content-disposition"]
    assert all("userId" in entry for entry in response.json())
    assert event_log.get_all()[0].action == "LOGS_EXPORTED"


def test_lifespan_builds_and_flushes_services(tmp_path, monkeypatch):
    engine = database.make_engine(f"sqlite:///{tmp_path / 'app.db'}")
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "SessionLocal", database.make_session_factory(engine))

    with TestClient(app) as client:
        assert client.post("/links", json={"originalUrl": "https://example.com", "customCode": "life"}).status_code == 201

    with TestClient(app) as client:
        assert client.get("/links/life").status_code == 200
    engine.dispose()
