import base64
import hashlib
import hmac
from dataclasses import dataclass, field
from unittest.mock import Mock
from urllib.parse import urlencode

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from popclips import PopclipsConfig
from popclips.admin_api import AccessTokenResponse, ShopifyAdminAPI
from popclips.storage.sqlalchemy_shim import SqlalchemyStorageShim
from popclips.storage.tables import metadata
from popclips.web import main


API_KEY = "test-api-key"


API_SECRET = "hush"


SCOPES = ("read_products", "write_files")


APP_URL = "https://app.example.com"


def sign_query(params, secret=API_SECRET):
    """Sign params the way shopify signs oauth callbacks and admin loads."""
    message = urlencode(sorted((k, v) for (k, v) in params.items() if k != "hmac"))
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def sign_proxy_query(params, secret=API_SECRET):
    """Sign params the way shopify signs app proxy requests."""
    message = "".join(
        f"{k}={v}" for (k, v) in sorted(params.items()) if k != "signature"
    )
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def sign_body(body, secret=API_SECRET):
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


@dataclass
class DummyResponse:
    status: int
    json_body: dict = None
    location: str = None


@dataclass
class DummyWebShim:
    """In memory stand in for the pyramid shim."""

    params: list = field(default_factory=list)
    headers: dict = field(default_factory=dict)
    cookies: dict = field(default_factory=dict)
    body: bytes = b""
    cookies_set: dict = field(default_factory=dict)
    response_headers: dict = field(default_factory=dict)
    current_shop: object = None

    def get_param(self, name, default=None):
        for (k, v) in self.params:
            if k == name:
                return v
        return default

    def get_param_items(self):
        return list(self.params)

    def get_header(self, name, default=None):
        for (k, v) in self.headers.items():
            if k.lower() == name.lower():
                return v
        return default

    def set_header(self, name, value):
        self.response_headers[name] = value

    def get_cookie(self, name, default=None):
        return self.cookies.get(name, default)

    def set_cookie(self, name, value, max_age=None, httponly=True, samesite="lax", secure=True):
        self.cookies_set[name] = value

    def get_request_body(self):
        return self.body

    def set_current_shop(self, shop):
        self.current_shop = shop

    def get_install_url(self, get_params=None):
        return f"{APP_URL}/install?{urlencode(get_params or {})}"

    def get_auth_callback_url(self):
        return f"{APP_URL}/auth/callback"

    def get_home_url(self, get_params=None):
        return f"{APP_URL}/admin?{urlencode(get_params or {})}"

    def get_error_url(self, reason):
        return f"{APP_URL}/error?reason={reason}"

    def get_webhook_url(self, topic):
        return f"{APP_URL}/webhooks/{topic}"

    def get_subscription_callback_url(self, get_params=None):
        return f"{APP_URL}/subscription/callback?{urlencode(get_params or {})}"

    def response_json(self, payload, status=200):
        return DummyResponse(status=status, json_body=payload)

    def redirect_302_url(self, url):
        return DummyResponse(status=302, location=url)


@pytest.fixture
def popclips_config():
    return PopclipsConfig(
        api_key=API_KEY,
        api_secret=API_SECRET,
        api_version="2026-01",
        access_scopes=SCOPES,
    )


@pytest.fixture
def web_shim():
    return DummyWebShim()


@pytest.fixture
def storage_shim(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'popclips.db'}")
    metadata.create_all(engine)
    session = Session(engine)
    yield SqlalchemyStorageShim(db=session)
    session.close()
    engine.dispose()


@pytest.fixture
def admin_api():
    api = Mock(spec=ShopifyAdminAPI)
    api.api_version = "2026-01"
    api.request_access_token.return_value = AccessTokenResponse(
        access_token="shpat_secret", access_scopes=list(SCOPES)
    )
    api.get_shop_info.return_value = {
        "name": "Test Shop",
        "email": "owner@test-shop.example",
    }
    return api


def add_shop(storage_shim, shop_host, active=True, access_scopes=SCOPES):
    shop = storage_shim.save_installed_shop(
        shop_host,
        name=shop_host.split(".")[0],
        email=None,
        access_token=f"token-{shop_host}",
        access_scopes=list(access_scopes),
    )
    if not active:
        storage_shim.deactivate_shop(shop_host)
        shop = storage_shim.get_shop(shop_host)
    return shop


@pytest.fixture
def app(tmp_path, admin_api):
    wsgi_app = main(
        {},
        **{
            "popclips.api_key": API_KEY,
            "popclips.api_secret": API_SECRET,
            "popclips.scopes": ",".join(SCOPES),
            "popclips.create_tables": "true",
            "sqlalchemy.url": f"sqlite:///{tmp_path / 'app.db'}",
        },
    )
    wsgi_app.registry["popclips.admin_api"] = admin_api
    yield wsgi_app
    wsgi_app.registry["popclips.engine"].dispose()


@pytest.fixture
def app_storage(app):
    """Storage on the app's database, commit before making requests."""
    session = app.registry["popclips.dbsession_factory"]()
    yield SqlalchemyStorageShim(db=session)
    session.close()
