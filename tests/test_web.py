import json
from urllib.parse import parse_qs, urlencode, urlparse

import requests
from sqlalchemy import insert, select
from webob import Request

from popclips.admin_api import RecurringCharge
from popclips.billing import PRO_PLAN_NAME, PRO_PRICE
from popclips.storage import tables

from .conftest import API_KEY, add_shop, sign_body, sign_proxy_query, sign_query


SHOP = "test-shop.myshopify.com"


def get(app, path, params=None, **kw):
    if params:
        path = f"{path}?{urlencode(params)}"
    return Request.blank(path, **kw).get_response(app)


def signed(params):
    return dict(params, hmac=sign_query(params))


def seed_shop(app_storage, shop_host=SHOP, active=True):
    shop = add_shop(app_storage, shop_host, active=active)
    app_storage.db.commit()
    return shop


def test_admin_api_without_shop_suggests_installed_shop(app, app_storage):
    seed_shop(app_storage, "shop-a.myshopify.com")
    response = get(app, "/api/v1/shop")
    assert response.status_int == 401
    assert response.json_body["error"] == "Shop domain required"
    assert response.json_body["hint"] == (
        "Try adding ?shop=shop-a.myshopify.com to your URL"
    )


def test_admin_api_with_signed_shop(app, app_storage):
    seed_shop(app_storage)
    response = get(app, "/api/v1/shop", signed({"shop": SHOP, "timestamp": "1"}))
    assert response.status_int == 200
    assert response.json_body["shop"]["shopify_domain"] == SHOP
    assert "access_token" not in response.json_body["shop"]
    assert "popclips_shop=" in response.headers["Set-Cookie"]
    assert "samesite=none" in response.headers["Set-Cookie"].lower()


def test_admin_api_bad_signature(app, app_storage):
    seed_shop(app_storage)
    response = get(app, "/api/v1/shop", {"shop": SHOP, "hmac": "nope"})
    assert response.status_int == 401
    assert response.json_body == {"error": "Invalid request signature"}
    assert "Set-Cookie" not in response.headers


def test_admin_api_inactive_shop(app, app_storage):
    seed_shop(app_storage, active=False)
    response = get(app, "/api/v1/shop", signed({"shop": SHOP}))
    assert response.status_int == 401
    assert response.json_body["error"] == "Shop is inactive"


def test_install_and_callback(app, app_storage, admin_api):
    response = get(app, "/install", {"shop": "test-shop"})
    assert response.status_int == 302
    location = urlparse(response.location)
    assert location.netloc == SHOP
    query = parse_qs(location.query)
    assert query["client_id"] == [API_KEY]
    assert query["redirect_uri"] == ["http://localhost/auth/callback"]
    state = query["state"][0]

    response = get(
        app,
        "/auth/callback",
        signed({"code": "abc", "shop": SHOP, "state": state, "timestamp": "1"}),
    )
    assert response.status_int == 302
    assert response.location == f"http://localhost/admin?shop={SHOP}"
    app_storage.db.rollback()
    assert app_storage.get_shop(SHOP).is_active
    assert admin_api.create_webhook.call_args_list[0].args[3] == (
        "http://localhost/webhooks/app/uninstalled"
    )


def test_callback_with_tampered_hmac(app, app_storage):
    response = get(app, "/install", {"shop": SHOP})
    state = parse_qs(urlparse(response.location).query)["state"][0]
    params = signed({"code": "abc", "shop": SHOP, "state": state, "timestamp": "1"})
    params["timestamp"] = "2"
    response = get(app, "/auth/callback", params)
    assert response.status_int == 302
    assert response.location == "http://localhost/error?reason=invalid_signature"
    app_storage.db.rollback()
    assert app_storage.get_shop(SHOP) is None

    response = get(app, "/error", {"reason": "invalid_signature"})
    assert "Invalid request signature" in response.text


def test_install_rejects_missing_shop(app):
    response = get(app, "/install")
    assert response.status_int == 400
    assert response.json_body == {"error": "Shop domain required"}


def test_admin_dashboard_redirects_uninstalled_shop(app):
    response = get(app, "/admin", {"shop": SHOP})
    assert response.status_int == 302
    assert response.location == f"http://localhost/install?shop={SHOP}"


def test_admin_dashboard_sets_frame_ancestors(app, app_storage):
    seed_shop(app_storage)
    response = get(app, "/admin/clips", {"shop": SHOP})
    assert response.status_int == 200
    assert f"https://{SHOP}" in response.headers["Content-Security-Policy"]
    assert API_KEY in response.text


def post_webhook(app, topic, payload, hmac_header=None):
    body = json.dumps(payload).encode()
    return Request.blank(
        f"/webhooks/{topic}",
        method="POST",
        body=body,
        content_type="application/json",
        headers={
            "X-Shopify-Topic": topic,
            "X-Shopify-Shop-Domain": SHOP,
            "X-Shopify-Hmac-Sha256": hmac_header or sign_body(body),
        },
    ).get_response(app)


def test_webhook_uninstall(app, app_storage):
    seed_shop(app_storage)
    response = post_webhook(app, "app/uninstalled", {"id": 1})
    assert response.status_int == 200
    assert response.json_body == {"success": True}
    app_storage.db.rollback()
    assert not app_storage.get_shop(SHOP).is_active


def test_webhook_bad_signature(app, app_storage):
    seed_shop(app_storage)
    response = post_webhook(app, "app/uninstalled", {"id": 1}, hmac_header="AAAA")
    assert response.status_int == 401
    app_storage.db.rollback()
    assert app_storage.get_shop(SHOP).is_active


def test_admin_prefix_does_not_match_other_paths(app):
    assert get(app, "/administrator").status_int == 404
    assert get(app, "/adminfoo").status_int == 404


def api_request(app, path, params, method="GET"):
    return Request.blank(f"{path}?{urlencode(signed(params))}", method=method).get_response(
        app
    )


def seed_pending_charge(app_storage, admin_api, status="active"):
    shop = seed_shop(app_storage)
    app_storage.create_subscription(shop.id, "1029266947", "pro", "29.99")
    app_storage.db.commit()
    admin_api.get_recurring_charge.return_value = RecurringCharge(
        id=1029266947, name=PRO_PLAN_NAME, price=PRO_PRICE, status=status
    )
    return shop


def test_subscription_for_free_shop(app, app_storage):
    seed_shop(app_storage)
    response = api_request(app, "/api/v1/subscription", {"shop": SHOP})
    assert response.status_int == 200
    assert response.json_body["plan"] == "free"
    assert response.json_body["subscription"] is None


def test_upgrade_returns_confirmation_url(app, app_storage, admin_api):
    seed_shop(app_storage)
    admin_api.create_recurring_charge.return_value = RecurringCharge(
        id=1029266947,
        name=PRO_PLAN_NAME,
        price=PRO_PRICE,
        status="pending",
        confirmation_url="https://test-shop.myshopify.com/admin/charges/confirm",
    )
    response = api_request(
        app, "/api/v1/subscription/upgrade", {"shop": SHOP}, method="POST"
    )
    assert response.status_int == 200
    assert response.json_body == {
        "confirmation_url": "https://test-shop.myshopify.com/admin/charges/confirm"
    }
    return_url = admin_api.create_recurring_charge.call_args.args[4]
    assert return_url == f"http://localhost/subscription/callback?shop={SHOP}"
    app_storage.db.rollback()
    shop = app_storage.get_shop(SHOP)
    assert app_storage.get_subscription_by_charge_id(shop.id, "1029266947").status == (
        "pending"
    )


def test_upgrade_failure_is_reported(app, app_storage, admin_api):
    seed_shop(app_storage)
    admin_api.create_recurring_charge.side_effect = requests.HTTPError("422")
    response = api_request(
        app, "/api/v1/subscription/upgrade", {"shop": SHOP}, method="POST"
    )
    assert response.status_int == 500
    assert response.json_body == {"error": "Failed to create subscription charge"}


def test_subscription_callback_activates(app, app_storage, admin_api):
    seed_pending_charge(app_storage, admin_api)
    response = get(
        app, "/subscription/callback", {"shop": SHOP, "charge_id": "1029266947"}
    )
    assert response.status_int == 302
    assert response.location == (
        f"http://localhost/admin/settings?shop={SHOP}&billing=success"
    )
    assert "popclips_shop=" in response.headers["Set-Cookie"]
    app_storage.db.rollback()
    assert app_storage.get_shop(SHOP).plan == "pro"


def test_subscription_callback_declined(app, app_storage, admin_api):
    seed_pending_charge(app_storage, admin_api, status="declined")
    response = get(
        app, "/subscription/callback", {"shop": SHOP, "charge_id": "1029266947"}
    )
    assert response.location.endswith("billing=declined")
    app_storage.db.rollback()
    assert app_storage.get_shop(SHOP).plan == "free"


def test_subscription_callback_unknown_charge(app, app_storage, admin_api):
    seed_pending_charge(app_storage, admin_api)
    response = get(app, "/subscription/callback", {"shop": SHOP, "charge_id": "999"})
    assert response.location.endswith("billing=error")


def test_subscription_callback_requires_shop(app):
    response = get(app, "/subscription/callback", {"charge_id": "1"})
    assert response.status_int == 401


def test_cancel_pro_subscription(app, app_storage, admin_api):
    shop = seed_pending_charge(app_storage, admin_api)
    get(app, "/subscription/callback", {"shop": SHOP, "charge_id": "1029266947"})
    response = api_request(
        app, "/api/v1/subscription/cancel", {"shop": SHOP}, method="POST"
    )
    assert response.status_int == 200
    assert response.json_body["plan"] == "free"
    admin_api.cancel_recurring_charge.assert_called_once_with(
        SHOP, shop.access_token, "1029266947"
    )
    app_storage.db.rollback()
    assert app_storage.get_shop(SHOP).plan == "free"


def test_cancel_without_subscription(app, app_storage):
    seed_shop(app_storage)
    response = api_request(
        app, "/api/v1/subscription/cancel", {"shop": SHOP}, method="POST"
    )
    assert response.status_int == 400
    assert response.json_body == {"error": "No active Pro subscription to cancel"}


def post_track(app, params, payload):
    return Request.blank(
        f"/api/v1/storefront/track?{urlencode(params)}",
        method="POST",
        body=json.dumps(payload).encode(),
        content_type="application/json",
    ).get_response(app)


def proxy_params(shop=SHOP):
    params = {"shop": shop, "path_prefix": "/apps/popclips", "timestamp": "1"}
    return dict(params, signature=sign_proxy_query(params))


def seed_clip(app_storage, shop):
    """Returns (clip_id, hotspot_id) for a new clip with one hotspot."""
    db = app_storage.db
    clip_id = db.execute(
        insert(tables.clips).values(shop_id=shop.id, title="clip")
    ).inserted_primary_key[0]
    hotspot_id = db.execute(
        insert(tables.hotspots).values(clip_id=clip_id, shopify_product_id="123")
    ).inserted_primary_key[0]
    db.commit()
    return clip_id, hotspot_id


def widget_payload(event, **data):
    # The shape the storefront carousel posts.
    payload = {
        "event": event,
        "session_id": "sess-1",
        "visitor_id": "visitor-1",
        "device_type": "mobile",
        "browser": "Safari",
        "shop": SHOP,
    }
    payload.update(data)
    return payload


def analytics_rows(app_storage):
    app_storage.db.rollback()
    return app_storage.db.execute(select(tables.analytics)).mappings().all()


def test_storefront_track_widget_event(app, app_storage):
    shop = seed_shop(app_storage)
    clip_id, _ = seed_clip(app_storage, shop)
    response = post_track(app, proxy_params(), widget_payload("clip_view", clip_id=clip_id))
    assert response.status_int == 201
    assert response.json_body == {"success": True, "recorded": True}
    (row,) = analytics_rows(app_storage)
    assert row["shop_id"] == shop.id
    assert row["event_type"] == "clip_view"
    assert row["clip_id"] == clip_id
    assert row["session_id"] == "sess-1"
    assert row["metadata"] == {
        "visitor_id": "visitor-1",
        "device_type": "mobile",
        "browser": "Safari",
    }


def test_storefront_track_accepts_event_type(app, app_storage):
    shop = seed_shop(app_storage)
    clip_id, _ = seed_clip(app_storage, shop)
    response = post_track(
        app, proxy_params(), {"event_type": "like", "clip_id": str(clip_id)}
    )
    assert response.status_int == 201


def test_storefront_track_hotspot_event(app, app_storage):
    shop = seed_shop(app_storage)
    clip_id, hotspot_id = seed_clip(app_storage, shop)
    response = post_track(
        app, proxy_params(), widget_payload("add_to_cart", hotspot_id=hotspot_id)
    )
    assert response.status_int == 201
    (row,) = analytics_rows(app_storage)
    assert row["hotspot_id"] == hotspot_id
    assert row["clip_id"] == clip_id


def test_storefront_track_ignores_other_shops_clip(app, app_storage):
    seed_shop(app_storage)
    other = seed_shop(app_storage, "other-shop.myshopify.com")
    other_clip_id, other_hotspot_id = seed_clip(app_storage, other)

    response = post_track(
        app, proxy_params(), widget_payload("clip_view", clip_id=other_clip_id)
    )
    assert response.status_int == 200
    assert response.json_body == {"success": True, "recorded": False}
    response = post_track(
        app, proxy_params(), widget_payload("hotspot_click", hotspot_id=other_hotspot_id)
    )
    assert response.json_body["recorded"] is False
    assert analytics_rows(app_storage) == []


def test_storefront_track_missing_clip(app, app_storage):
    seed_shop(app_storage)
    response = post_track(app, proxy_params(), widget_payload("share"))
    assert response.json_body["recorded"] is False
    assert analytics_rows(app_storage) == []


def test_storefront_track_bad_signature(app, app_storage):
    seed_shop(app_storage)
    params = dict(proxy_params(), timestamp="2")
    response = post_track(app, params, widget_payload("clip_view", clip_id=1))
    assert response.status_int == 401
    assert response.json_body == {"error": "Invalid signature"}


def test_storefront_track_unknown_shop(app):
    response = post_track(app, proxy_params(), widget_payload("clip_view", clip_id=1))
    assert response.status_int == 404


def test_storefront_track_unknown_event(app, app_storage):
    seed_shop(app_storage)
    response = post_track(app, proxy_params(), widget_payload("purchase"))
    assert response.status_int == 422
