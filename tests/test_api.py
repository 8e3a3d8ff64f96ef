import pytest
from fastapi.testclient import TestClient
from jose import jwt

from tradefeed_service import main
from tradefeed_service.config import settings
from tests.conftest import (
    FakeCache,
    FakeKafkaProducer,
    FakeServiceClient,
    InMemoryRatingRepository,
    InMemoryTradeRepository,
    make_trade,
)


def _token(user_id, **claims):
    payload = {"sub": user_id, "username": f"user {user_id}", **claims}
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _auth(user_id, **claims):
    return {"Authorization": f"Bearer {_token(user_id, **claims)}"}


@pytest.fixture
def stores():
    return {
        "trades": InMemoryTradeRepository(),
        "ratings": InMemoryRatingRepository(),
        "cache": FakeCache(),
        "kafka": FakeKafkaProducer(),
        "client": FakeServiceClient(),
    }


@pytest.fixture
def client(stores):
    overrides = {
        main.get_trade_repository: lambda: stores["trades"],
        main.get_rating_repository: lambda: stores["ratings"],
        main.get_cache: lambda: stores["cache"],
        main.get_kafka_producer: lambda: stores["kafka"],
        main.get_service_client: lambda: stores["client"],
    }
    main.app.dependency_overrides.update(overrides)
    # No context manager: the lifespan would connect to Mongo, Redis and Kafka
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_feed_pages_through_session(client, stores):
    for i in range(25):
        stores["trades"].add(make_trade(i + 1))

    first = client.get("/api/v1/trades/feed")
    assert first.status_code == 200
    body = first.json()
    assert len(body["items"]) == 20
    assert body["has_more"] is True
    assert body["items"][0]["trade"]["status"] == "w"

    more = client.get(
        f"/api/v1/trades/feed/{body['session_id']}/more", headers=_auth("reader")
    )
    assert more.status_code == 200
    assert len(more.json()["items"]) == 5
    assert more.json()["has_more"] is False


def test_anonymous_reader_gets_first_page_only(client, stores):
    stores["trades"].add(make_trade(1))
    session_id = client.get("/api/v1/trades/feed").json()["session_id"]

    response = client.get(f"/api/v1/trades/feed/{session_id}/more")

    assert response.status_code in (401, 403)


def test_status_filter(client, stores):
    win = stores["trades"].add(make_trade(1, has_total=10, wants_total=20))
    stores["trades"].add(make_trade(2, has_total=20, wants_total=10))

    response = client.get("/api/v1/trades/feed", params={"status": ["win"]})

    assert [i["id"] for i in response.json()["items"]] == [win.id]


def test_unknown_status_filter(client):
    response = client.get("/api/v1/trades/feed", params={"status": ["draw"]})

    assert response.status_code == 400


def test_my_trades_needs_login(client):
    assert client.get("/api/v1/trades/feed", params={"my_trades": True}).status_code == 401


def test_my_trades(client, stores):
    mine = stores["trades"].add(make_trade(1, trader_id="me"))
    stores["trades"].add(make_trade(2, trader_id="other"))

    response = client.get(
        "/api/v1/trades/feed", params={"my_trades": True}, headers=_auth("me")
    )

    assert [i["id"] for i in response.json()["items"]] == [mine.id]


def test_search_and_refresh(client, stores):
    owl = stores["trades"].add(make_trade(1, has=("Owl",), wants=("Bat",)))
    stores["trades"].add(make_trade(2))
    session_id = client.get("/api/v1/trades/feed").json()["session_id"]

    found = client.get(
        f"/api/v1/trades/feed/{session_id}/search", params={"q": "OWL", "scope": "has"}
    )
    assert found.status_code == 200
    assert found.json()["search_mode"] is True
    assert [i["id"] for i in found.json()["items"]] == [owl.id]

    refreshed = client.post(f"/api/v1/trades/feed/{session_id}/refresh")
    assert refreshed.json()["search_mode"] is False
    assert len(refreshed.json()["items"]) == 2


def test_search_more_needs_login(client):
    session_id = client.get("/api/v1/trades/feed").json()["session_id"]

    response = client.get(
        f"/api/v1/trades/feed/{session_id}/search", params={"q": "owl", "more": True}
    )

    assert response.status_code == 401


def test_expired_session(client):
    response = client.get("/api/v1/trades/feed/unknown/more", headers=_auth("reader"))

    assert response.status_code == 404


def test_create_trade_then_cooldown(client, stores):
    payload = {
        "has_items": [{"name": "Frost Dragon", "value": 120}],
        "wants_items": [{"name": "Shadow Dragon", "value": 100}],
        "has_total": 120,
        "wants_total": 100,
    }

    created = client.post("/api/v1/trades", json=payload, headers=_auth("trader"))
    assert created.status_code == 201
    assert created.json()["status"] == "l"
    assert created.json()["trader_id"] == "trader"

    again = client.post("/api/v1/trades", json=payload, headers=_auth("trader"))
    assert again.status_code == 429
    assert again.json()["detail"].startswith("Please wait 2 minutes")


def test_create_trade_needs_login(client):
    response = client.post("/api/v1/trades", json={"has_items": [{"name": "Owl"}]})

    assert response.status_code in (401, 403)


def test_get_trade(client, stores):
    trade = stores["trades"].add(make_trade(1))

    assert client.get(f"/api/v1/trades/{trade.id}").json()["id"] == trade.id
    assert client.get("/api/v1/trades/000000000000000000000999").status_code == 404


def test_get_trade_store_failure(client, stores):
    trade = stores["trades"].add(make_trade(1))
    stores["trades"].fail = True

    response = client.get(f"/api/v1/trades/{trade.id}")

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to retrieve trade"


def test_delete_trade_permissions(client, stores):
    trade = stores["trades"].add(make_trade(1, trader_id="owner"))

    assert client.delete(f"/api/v1/trades/{trade.id}", headers=_auth("other")).status_code == 403

    response = client.delete(f"/api/v1/trades/{trade.id}", headers=_auth("owner"))
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert trade.id not in stores["trades"].trades


def test_feature_trade(client, stores):
    trade = stores["trades"].add(make_trade(1, trader_id="pro"))

    denied = client.post(f"/api/v1/trades/{trade.id}/feature", headers=_auth("pro"))
    assert denied.status_code == 403

    response = client.post(
        f"/api/v1/trades/{trade.id}/feature", headers=_auth("pro", is_pro=True)
    )
    assert response.status_code == 200
    assert response.json()["is_featured"] is True


def test_ratings(client):
    first = client.post("/api/v1/ratings/target", json={"rating": 5}, headers=_auth("a"))
    assert first.status_code == 200

    client.post("/api/v1/ratings/target", json={"rating": 4, "review": "ok"}, headers=_auth("b"))
    summary = client.get("/api/v1/ratings/target/summary").json()

    assert summary["average_rating"] == 4.5
    assert summary["count"] == 2


def test_rating_validation(client):
    assert client.post(
        "/api/v1/ratings/target", json={"rating": 9}, headers=_auth("a")
    ).status_code == 422
    assert client.post(
        "/api/v1/ratings/a", json={"rating": 3}, headers=_auth("a")
    ).status_code == 400


def test_unrated_user(client):
    assert client.get("/api/v1/ratings/nobody/summary").status_code == 404


def test_token_migration_is_admin_only(client, stores):
    stores["trades"].add(make_trade(1, tokens=False))

    denied = client.post("/internal/trades/migrate-tokens", headers=_auth("user"))
    assert denied.status_code == 403

    response = client.post(
        "/internal/trades/migrate-tokens", headers=_auth("admin", is_admin=True)
    )
    assert response.json() == {"total": 1, "updated": 1, "skipped": 0}

    status = client.get(
        "/internal/trades/migration-status",
        params={"sample_size": 1},
        headers=_auth("admin", is_admin=True),
    )
    assert status.json()["migration_percentage"] == 100.0
