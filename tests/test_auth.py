import hashlib
import hmac
from urllib.parse import parse_qs, urlparse

from app.api.v1.endpoints import auth as auth_endpoint
from app.core.security import create_oauth_state, get_token_payload
from app.models.shop import ShopSession

SHOP = "test-shop.myshopify.com"


def _hmac(params, secret="test-api-secret"):
    message = "&".join(f"{k}={v}" for k, v in sorted(params.items()))
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def test_install_redirects_to_consent_screen(client):
    response = client.get("/api/v1/auth/install", params={"shop": SHOP}, follow_redirects=False)

    assert response.status_code == 307
    location = urlparse(response.headers["location"])
    assert location.netloc == SHOP
    assert location.path == "/admin/oauth/authorize"
    query = parse_qs(location.query)
    assert query["client_id"] == ["test-api-key"]
    assert query["redirect_uri"][0].endswith("/api/v1/auth/callback")
    assert get_token_payload(query["state"][0])["shop"] == SHOP


def test_install_rejects_foreign_domains(client):
    response = client.get("/api/v1/auth/install", params={"shop": "evil.example.com"}, follow_redirects=False)
    assert response.status_code == 400


def test_callback_stores_session_and_issues_token(client, db, monkeypatch):
    monkeypatch.setattr(
        auth_endpoint,
        "exchange_code_for_token",
        lambda shop, code: {"access_token": "shpat_new", "scope": "read_products"},
    )
    params = {"shop": SHOP, "code": "abc", "state": create_oauth_state(SHOP), "timestamp": "1700000000"}
    params["hmac"] = _hmac(params)

    response = client.get("/api/v1/auth/callback", params=params)

    assert response.status_code == 200
    body = response.json()
    assert body["shop"] == SHOP
    assert get_token_payload(body["access_token"])["sub"] == SHOP
    session = db.query(ShopSession).filter(ShopSession.shop == SHOP).one()
    assert (session.access_token, session.is_active) == ("shpat_new", True)

    listed = client.get("/api/v1/attributes/", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert listed.status_code == 200


def test_callback_rejects_bad_hmac(client, monkeypatch):
    monkeypatch.setattr(auth_endpoint, "exchange_code_for_token", lambda shop, code: {"access_token": "x"})
    params = {"shop": SHOP, "code": "abc", "state": create_oauth_state(SHOP), "hmac": "00" * 32}
    assert client.get("/api/v1/auth/callback", params=params).status_code == 403


def test_callback_rejects_state_for_other_shop(client):
    params = {"shop": SHOP, "code": "abc", "state": create_oauth_state("other.myshopify.com")}
    params["hmac"] = _hmac(params)
    assert client.get("/api/v1/auth/callback", params=params).status_code == 403


def test_logout(client, auth_headers):
    response = client.post("/api/v1/auth/logout", headers=auth_headers)
    assert response.status_code == 200
