from zope.interface import Attribute, Interface


class IWebShim(Interface):
    """Everything the services need from the web framework's request."""

    def get_param(name, default=None):
        """A single query string value."""

    def get_param_items():
        """Every (key, value) pair of the query string, repeats included."""

    def get_header(name, default=None):
        pass

    def set_header(name, value):
        pass

    def get_cookie(name, default=None):
        pass

    def set_cookie(name, value, max_age=None, httponly=True, samesite="lax", secure=True):
        pass

    def get_request_body():
        """Raw request body bytes, untouched."""

    def set_current_shop(shop):
        """Attach the resolved shop to the request for downstream views."""

    def get_install_url(get_params=None):
        pass

    def get_auth_callback_url():
        pass

    def get_home_url(get_params=None):
        pass

    def get_error_url(reason):
        pass

    def get_webhook_url(topic):
        pass

    def get_subscription_callback_url(get_params=None):
        pass

    def response_json(payload, status=200):
        pass

    def redirect_302_url(url):
        pass


class IShopStorage(Interface):
    """Persistence for shops, oauth states and everything hanging off a shop."""

    def get_shop(shop_host):
        pass

    def get_active_shop(shop_host):
        pass

    def first_active_shop():
        pass

    def list_active_shop_hosts():
        pass

    def save_installed_shop(shop_host, name, email, access_token, access_scopes):
        pass

    def update_shop_details(shop_host, name=None, email=None):
        pass

    def deactivate_shop(shop_host):
        pass

    def delete_shop(shop_host):
        pass

    def store_oauth_state(oauth_state):
        pass

    def consume_oauth_state(nonce):
        pass

    def has_pending_oauth_state(shop_host):
        pass

    def owns_clip(shop_id, clip_id):
        pass

    def get_owned_hotspot_clip_id(shop_id, hotspot_id):
        """The hotspot's clip id when that clip belongs to the shop."""

    def record_event(
        shop_id,
        event_type,
        clip_id=None,
        hotspot_id=None,
        session_id=None,
        shopify_product_id=None,
        revenue=None,
        currency="USD",
        metadata=None,
    ):
        pass


class IShopifyAdminAPI(Interface):
    api_version = Attribute("The admin api version, ie. 2026-01")

    def request_access_token(shop_host, grant_code, api_key, api_secret):
        pass

    def execute_graphql(shop_host, access_token, query, variables=None, operation_name=None):
        pass

    def get_shop_info(shop_host, access_token):
        pass

    def create_webhook(shop_host, access_token, topic, address, fields=None):
        pass


class IWebhookHandlerRegistry(Interface):
    def add(webhook_handler, topic=None, priority=0):
        pass

    def matches(topic):
        """Registered handlers for `topic`, highest priority first."""
