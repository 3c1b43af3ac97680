import pytest

from conftest import ScriptedProvider, StaticAdapter, posting

from sale_discovery.admin_server import create_app


HIGH = '{"confidence": 0.9, "title": "Test Sale"}'
MEDIUM = '{"confidence": 0.5, "title": "Maybe a sale"}'


@pytest.fixture
def engine(make_engine):
    items = [posting("1", "מבצע 50% הנחה", "https://t.me/test/1"), posting("2", "אולי 20% הנחה")]
    return make_engine([StaticAdapter(items)], provider=ScriptedProvider({"מבצע": HIGH, "אולי": MEDIUM}))


@pytest.fixture
def client(engine):
    app = create_app(engine, admin_secret="s3cret")
    app.config["TESTING"] = True
    return app.test_client()


def test_health(client) -> None:
    assert client.get("/health").get_json() == {"status": "ok"}


def test_stats_needs_no_secret(client) -> None:
    response = client.get("/discovery/stats")

    assert response.status_code == 200
    assert response.get_json()["queueSize"] == 0


@pytest.mark.parametrize(
    "path",
    [
        "/discovery/trigger",
        "/discovery/add-channel",
        "/discovery/add-rss",
        "/discovery/add-web",
        "/discovery/review/abc/approve",
        "/discovery/review/abc/reject",
    ],
)
def test_bad_secret_is_refused(client, engine, path) -> None:
    response = client.post(f"{path}?secret=wrong", json={"username": "DealsIL", "url": "https://x.example"})

    assert response.status_code == 403
    assert response.get_json()["ok"] is False
    assert engine.last_summary is None
    assert len(engine.adapters) == 1


def test_missing_secret_is_refused(client) -> None:
    response = client.get("/discovery/review")

    assert response.status_code == 403
    assert response.get_json() == {"ok": False, "error": "Invalid admin secret"}


def test_unset_server_secret_refuses_everything(engine) -> None:
    client = create_app(engine, admin_secret="").test_client()

    assert client.post("/discovery/trigger?secret=").status_code == 403


def test_trigger_runs_a_cycle(client, engine) -> None:
    response = client.post("/discovery/trigger?secret=s3cret")

    body = response.get_json()
    assert response.status_code == 200
    assert body["ok"] is True
    assert body["summary"]["auto_published"] == 1
    assert body["summary"]["queued_for_review"] == 1
    assert body["stats"]["lastCycle"]["classified"] == 2


def test_add_channel(client, engine) -> None:
    first = client.post("/discovery/add-channel?secret=s3cret", json={"username": "DealsIL", "name": "Deals Israel"})
    again = client.post("/discovery/add-channel?secret=s3cret", json={"username": "@dealsil"})

    assert first.get_json() == {"ok": True, "added": True, "message": "Added channel: Deals Israel"}
    assert again.get_json()["added"] is False
    assert len(engine.adapters) == 2


def test_add_rss_and_web(client, engine) -> None:
    rss = client.post("/discovery/add-rss?secret=s3cret", json={"url": "https://example.com/rss", "name": "Example"})
    web = client.post("/discovery/add-web?secret=s3cret", json={"url": "https://deals.example/"})

    assert rss.get_json()["message"] == "Added RSS feed: Example"
    assert web.get_json() == {"ok": True, "added": True}
    assert engine.get_stats()["sources"]["rss"] == 1
    assert engine.get_stats()["sources"]["web"] == 1


@pytest.mark.parametrize(
    "path,payload",
    [
        ("/discovery/add-channel", {"name": "No username"}),
        ("/discovery/add-rss", {"url": "   "}),
        ("/discovery/add-web", None),
    ],
)
def test_missing_required_field(client, path, payload) -> None:
    response = client.post(f"{path}?secret=s3cret", json=payload)

    assert response.status_code == 400
    assert response.get_json()["ok"] is False


def test_review_endpoints(client, fake_db) -> None:
    client.post("/discovery/trigger?secret=s3cret")

    listing = client.get("/discovery/review?secret=s3cret").get_json()
    assert listing["ok"] is True
    assert len(listing["items"]) == 1
    review_id = listing["items"][0]["id"]

    approved = client.post(f"/discovery/review/{review_id}/approve?secret=s3cret")
    assert approved.status_code == 200
    assert approved.get_json()["saleId"]
    assert len(fake_db.sales) == 2

    assert client.post(f"/discovery/review/{review_id}/approve?secret=s3cret").status_code == 404
    assert client.post(f"/discovery/review/{review_id}/reject?secret=s3cret").status_code == 404


def test_approve_publish_failure_returns_500(client, fake_db) -> None:
    client.post("/discovery/trigger?secret=s3cret")
    review_id = client.get("/discovery/review?secret=s3cret").get_json()["items"][0]["id"]
    fake_db.fail_sales = True

    response = client.post(f"/discovery/review/{review_id}/approve?secret=s3cret")

    assert response.status_code == 500
    assert response.get_json()["ok"] is False
