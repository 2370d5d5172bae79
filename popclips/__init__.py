"""
@NOTE: Resolution for shop name overloading.

shop_name: The name of the shop, used as a subdomain of myshopify.com
shop_host: The shopname and the correct top level domain: "{shop_name}.myshopify.com".
    This is what we key shops on and what the database calls `shopify_domain`.

@NOTE: Install states.

A shop moves unstarted -> awaiting_authorization -> installed and then to
uninstalled (app/uninstalled webhook) or back to unstarted when the shop is
redacted (shop/redact webhook deletes everything).  Token exchange happens
inside the single callback request so it never shows up as a stored state.
"""
import logging
from dataclasses import dataclass, field
import random
import string
from datetime import timedelta, datetime, timezone
from urllib.parse import urlencode

import requests

from .exceptions import (
    InstallDomainInvalid,
    InstallError,
    InvalidOAuthState,
    InvalidSignature,
    MissingOAuthParameters,
    ShopResolutionError,
    TokenExchangeFailed,
)
from .interfaces import IShopifyAdminAPI, IShopStorage, IWebShim
from .models import OAuthState
from .resolver import ShopResolver
from .scopes import parse_scopes, scopes_have_changed
from .shop_cookie import RememberedShopCookie
from .signatures import verify_proxy_signature, verify_request_hmac
from .util import MYSHOPIFY_DOMAIN, is_valid_shop_domain, normalize_shop_domain
from .webhook_handlers import INSTALL_WEBHOOK_TOPICS

logger = logging.getLogger(__name__)


@dataclass
class PopclipsConfig:
    """
    Mechanism to provide configuration to ShopAuthService.
    """

    api_key: str
    api_secret: str
    api_version: str
    # The shopify access scopes that our app needs, such as read_products, write_files, etc.
    access_scopes: tuple
    myshopify_domain: str = MYSHOPIFY_DOMAIN
    # Check the hmac on admin api requests as well as resolving the shop.
    verify_admin_requests: bool = True
    # Remember the resolved shop in a signed cookie, see RememberedShopCookie.
    remember_shop: bool = True
    shop_cookie_name: str = "popclips_shop"
    shop_cookie_max_age: int = 60 * 60
    jwt_leeway_in_seconds: int = 5
    # How long the merchant has to approve the grant screen.
    oauth_state_ttl_in_seconds: int = 10 * 60
    oauth_state_length: int = 40
    # Ask shopify for test charges, turn off in production.
    test_charges: bool = True
    # Seconds before a call to shopify gives up.
    http_timeout: float = 10


INSTALL_STATE_UNSTARTED = "unstarted"


INSTALL_STATE_AWAITING_AUTHORIZATION = "awaiting_authorization"


INSTALL_STATE_INSTALLED = "installed"


INSTALL_STATE_UNINSTALLED = "uninstalled"


@dataclass
class ShopAuthService:
    """
    Drive the oauth install of a shop and gate admin and app proxy requests.
    """

    config: PopclipsConfig
    web_shim: IWebShim
    storage_shim: IShopStorage
    admin_api: IShopifyAdminAPI
    utcnow: callable = field(default=lambda: datetime.now(timezone.utc))
    write_utcstamp: callable = field(default=lambda d: d.isoformat())
    read_utcstamp: callable = field(
        default=lambda utcstamp: datetime.fromisoformat(utcstamp)
    )

    @property
    def shop_resolver(self):
        remembered_shop = None
        if self.config.remember_shop:
            remembered_shop = RememberedShopCookie(
                secret=self.config.api_secret,
                cookie_name=self.config.shop_cookie_name,
                max_age=self.config.shop_cookie_max_age,
                jwt_leeway_in_seconds=self.config.jwt_leeway_in_seconds,
            )
        return ShopResolver(
            web_shim=self.web_shim,
            storage_shim=self.storage_shim,
            remembered_shop=remembered_shop,
            myshopify_domain=self.config.myshopify_domain,
        )

    def get_utcstamp(self, after_seconds):
        return self.write_utcstamp(self.utcnow() + timedelta(seconds=after_seconds))

    def is_utcstamp_expired(self, utcstamp):
        return self.utcnow() > self.read_utcstamp(utcstamp)

    def get_nonce(self, charset=string.ascii_letters + string.digits, length=None):
        """Get a random string of `length` characters from given `charset`."""
        length = length or self.config.oauth_state_length
        return "".join(random.SystemRandom().choice(charset) for _ in range(length))

    """
    Install flow
    """

    def begin_install(self):
        """
        Validate the shop and redirect to shopify to authorize our scopes.
        """
        shop_value = (self.web_shim.get_param("shop") or "").strip()
        if not shop_value:
            return self.web_shim.response_json(
                {"error": "Shop domain required"}, status=400
            )
        shop_host = normalize_shop_domain(shop_value, self.config.myshopify_domain)
        if not is_valid_shop_domain(shop_host, self.config.myshopify_domain):
            logger.info(f"Refusing install for malformed shop: {shop_value!r}")
            return self.web_shim.response_json(
                {"error": "Invalid shop domain"}, status=400
            )
        return self.web_shim.redirect_302_url(self.redirect_to_authorize_url(shop_host))

    def redirect_to_authorize_url(self, shop_host):
        """
        Store a fresh state nonce and build the url of shopify's grant screen.
        """
        nonce = self.get_nonce()
        self.storage_shim.store_oauth_state(
            OAuthState(
                nonce=nonce,
                shopify_domain=shop_host,
                expires_at_utcstamp=self.get_utcstamp(
                    after_seconds=self.config.oauth_state_ttl_in_seconds
                ),
                created_at=self.utcnow(),
            )
        )
        query = sorted(
            (
                {
                    "client_id": self.config.api_key,
                    # The scopes our app needs, like read_products, write_files, etc.
                    "scope": ",".join(self.config.access_scopes),
                    # This tells shopify where to send the callback with our grant code.
                    "redirect_uri": f"{self.web_shim.get_auth_callback_url()}",
                    "state": nonce,
                }
            ).items()
        )
        return f"https://{shop_host}/admin/oauth/authorize?{urlencode(query)}"

    def auth_callback(self):
        """
        Validate oauth callback, get access token, then redirect to proper url.

        Any failure lands on the error page with a short reason, never with
        the detail of what went wrong.
        """
        try:
            shop = self.complete_install()
        except (InstallError, InvalidSignature) as e:
            return self.web_shim.redirect_302_url(self.web_shim.get_error_url(e.reason))
        return self.web_shim.redirect_302_url(
            self.web_shim.get_home_url(get_params={"shop": shop.shopify_domain})
        )

    def complete_install(self):
        """
        Run the callback checks in order and install the shop.

        Nothing is written to the shop table unless every check passes.
        """
        code = self.web_shim.get_param("code")
        shop_value = self.web_shim.get_param("shop")
        logger.info(
            f"Shopify OAuth callback for {shop_value}: "
            f"has_code={bool(code)} has_state={bool(self.web_shim.get_param('state'))}"
        )
        if not code or not shop_value:
            logger.error("Missing OAuth parameters.")
            raise MissingOAuthParameters()

        if not verify_request_hmac(self.web_shim.get_param_items(), self.config.api_secret):
            logger.error(f"HMAC verification failed for oauth callback of {shop_value}")
            raise InvalidSignature()

        shop_host = normalize_shop_domain(shop_value, self.config.myshopify_domain)
        if not is_valid_shop_domain(shop_host, self.config.myshopify_domain):
            logger.error(f"Malformed shop in oauth callback: {shop_value!r}")
            raise InstallDomainInvalid()

        self.check_oauth_state(shop_host, self.web_shim.get_param("state"))

        try:
            token_response = self.admin_api.request_access_token(
                shop_host, code, self.config.api_key, self.config.api_secret
            )
        except requests.RequestException as e:
            logger.error(f"Failed to get access token for {shop_host}: {e}")
            raise TokenExchangeFailed()

        shop_info = self.fetch_shop_info(shop_host, token_response.access_token)
        shop = self.storage_shim.save_installed_shop(
            shop_host,
            name=shop_info.get("name"),
            email=shop_info.get("email"),
            access_token=token_response.access_token,
            access_scopes=token_response.access_scopes
            or parse_scopes(self.config.access_scopes),
        )
        self.register_webhooks(shop_host, token_response.access_token)
        logger.info(f"Shopify app installed successfully for {shop_host}")
        return shop

    def check_oauth_state(self, shop_host, nonce):
        oauth_state = self.storage_shim.consume_oauth_state(nonce)
        if not oauth_state:
            logger.error(f"Unknown oauth state for {shop_host}")
            raise InvalidOAuthState()
        elif oauth_state.shopify_domain != shop_host:
            logger.error(
                f"OAuth state was issued for {oauth_state.shopify_domain} not {shop_host}"
            )
            raise InvalidOAuthState()
        elif self.is_utcstamp_expired(oauth_state.expires_at_utcstamp):
            logger.error(f"OAuth state for {shop_host} expired")
            raise InvalidOAuthState()
        return oauth_state

    def fetch_shop_info(self, shop_host, access_token):
        try:
            return self.admin_api.get_shop_info(shop_host, access_token) or {}
        except requests.RequestException as e:
            logger.error(f"Shopify shop info error for {shop_host}: {e}")
            return {}

    def register_webhooks(self, shop_host, access_token):
        """
        Ask shopify to send us the install topics.

        A topic that fails is logged and skipped, reinstalling retries it.
        """
        registered = []
        for topic in INSTALL_WEBHOOK_TOPICS:
            try:
                self.admin_api.create_webhook(
                    shop_host,
                    access_token,
                    topic,
                    self.web_shim.get_webhook_url(topic),
                )
            except requests.RequestException as e:
                logger.warning(
                    f"Shopify webhook registration error for {shop_host} {topic}: {e}"
                )
            else:
                registered.append(topic)
        return registered

    def get_install_state(self, shop_host):
        shop = self.storage_shim.get_shop(shop_host)
        if shop and shop.is_active and shop.access_token:
            return INSTALL_STATE_INSTALLED
        elif shop:
            return INSTALL_STATE_UNINSTALLED
        elif self.storage_shim.has_pending_oauth_state(shop_host):
            return INSTALL_STATE_AWAITING_AUTHORIZATION
        return INSTALL_STATE_UNSTARTED

    def needs_install(self, shop_host):
        """True if the shop must (re)run oauth before loading the admin."""
        if self.get_install_state(shop_host) != INSTALL_STATE_INSTALLED:
            return True
        shop = self.storage_shim.get_shop(shop_host)
        if scopes_have_changed(shop.access_scopes, self.config.access_scopes):
            logger.info(f"Scopes have changed for {shop_host}, re-install.")
            return True
        return False

    def set_app_headers(self, shop_host=None):
        """Let the shopify admin frame us and nobody else."""
        if shop_host:
            frame_ancestors = f"https://{shop_host} https://admin.shopify.com"
        else:
            frame_ancestors = f"https://*.{self.config.myshopify_domain} https://admin.shopify.com"
        self.web_shim.set_header(
            "Content-Security-Policy", f"frame-ancestors {frame_ancestors};"
        )

    """
    Request gates
    """

    def verify_api_access(self):
        """
        Resolve the shop and check the request signature for admin api calls.

        Returns a 2-tuple of (shop, error_response).
        """
        resolver = self.shop_resolver
        try:
            shop = resolver.resolve(remember=False)
        except ShopResolutionError as e:
            return None, self.web_shim.response_json(e.payload(), status=e.status_code)
        if self.config.verify_admin_requests and not verify_request_hmac(
            self.web_shim.get_param_items(), self.config.api_secret
        ):
            logger.error(f"HMAC BAD for admin request of {shop.shopify_domain}")
            return None, self.invalid_signature_response("Invalid request signature")
        resolver.remember(shop)
        return shop, None

    def verify_shop_access(self):
        """
        Resolve the shop only, for pages shopify redirects the merchant to
        without signing the query, ie. the billing return url.

        Returns a 2-tuple of (shop, error_response).
        """
        try:
            shop = self.shop_resolver.resolve()
        except ShopResolutionError as e:
            return None, self.web_shim.response_json(e.payload(), status=e.status_code)
        return shop, None

    def verify_proxy_access(self):
        """
        Check an app proxy request and attach the shop it names if we know it.

        The shop here is advisory, inactive shops are still attached.
        Returns a 2-tuple of (shop or None, error_response).
        """
        param_items = self.web_shim.get_param_items()
        if not verify_proxy_signature(param_items, self.config.api_secret):
            logger.error("App proxy signature BAD, rejecting request.")
            return None, self.invalid_signature_response("Invalid signature")
        shop_host = self.web_shim.get_param("shop")
        shop = self.storage_shim.get_shop(shop_host) if shop_host else None
        if shop:
            self.web_shim.set_current_shop(shop)
        return shop, None

    def invalid_signature_response(self, message):
        return self.web_shim.response_json({"error": message}, status=401)


