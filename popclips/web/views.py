import json
import logging

from pyramid.view import view_config

from ..billing import BillingService
from ..exceptions import BillingError
from ..models import HOTSPOT_EVENT_TYPES, STOREFRONT_EVENT_TYPES, SUBSCRIPTION_ACTIVE
from ..util import as_int, normalize_shop_domain
from ..webhook_endpoint import WebhookEndpointService


logger = logging.getLogger(__name__)


ERROR_MESSAGES = {
    "missing_parameters": "Missing required parameters",
    "invalid_signature": "Invalid request signature",
    "invalid_shop": "Invalid shop domain",
    "invalid_state": "Your install session expired, please try installing again",
    "token_exchange_failed": "Failed to get access token",
}


DEFAULT_ERROR_MESSAGE = "Something went wrong while installing Popclips"


# The admin single page app takes over from here.
ADMIN_HTML_CONTENT_FMT = """<!DOCTYPE html>
<html>
  <head>
    <meta name="shopify-api-key" content="%s" />
    <script src="https://cdn.shopify.com/shopifycloud/app-bridge.js"></script>
    <script type="module" src="/static/admin.js"></script>
  </head>
  <body><div id="app"></div></body>
</html>"""


ERROR_HTML_CONTENT_FMT = """<!DOCTYPE html>
<html>
  <head><title>Popclips</title></head>
  <body><h1>Popclips</h1><p>%s</p></body>
</html>"""


def _html(request, content, status=200):
    response = request.response
    response.status_int = status
    response.content_type = "text/html"
    response.text = content
    return response


def _billing_service(request):
    return BillingService(
        storage_shim=request.storage_shim,
        admin_api=request.registry["popclips.admin_api"],
        test_charges=request.registry["popclips.config"].test_charges,
    )


def _admin_html(request):
    return ADMIN_HTML_CONTENT_FMT % (request.registry["popclips.config"].api_key,)


@view_config(route_name="home", request_method="GET")
def home_view(request):
    shop_value = request.GET.get("shop")
    if shop_value:
        return request.web_shim.redirect_302_url(
            request.web_shim.get_install_url({"shop": shop_value})
        )
    return _html(request, _admin_html(request))


@view_config(route_name="install", request_method="GET")
def install_view(request):
    return request.shop_auth.begin_install()


@view_config(route_name="auth_callback", request_method="GET")
def auth_callback_view(request):
    return request.shop_auth.auth_callback()


@view_config(route_name="error", request_method="GET")
def error_view(request):
    message = ERROR_MESSAGES.get(request.GET.get("reason"), DEFAULT_ERROR_MESSAGE)
    return _html(request, ERROR_HTML_CONTENT_FMT % (message,))


@view_config(route_name="admin_dashboard", request_method="GET")
@view_config(route_name="admin_pages", request_method="GET")
def admin_dashboard_view(request):
    shop_auth = request.shop_auth
    shop_value = request.GET.get("shop")
    shop_host = None
    if shop_value:
        shop_host = normalize_shop_domain(
            shop_value, request.registry["popclips.config"].myshopify_domain
        )
        if shop_auth.needs_install(shop_host):
            return request.web_shim.redirect_302_url(
                request.web_shim.get_install_url({"shop": shop_value})
            )
    shop_auth.set_app_headers(shop_host)
    return _html(request, _admin_html(request))


@view_config(route_name="webhook", request_method="POST")
def webhook_view(request):
    topic = "{resource}/{event}".format(**request.matchdict)
    endpoint = WebhookEndpointService(
        web_shim=request.web_shim,
        registry=request.registry["popclips.webhook_registry"],
        handler_state_maker=lambda: {"storage_shim": request.storage_shim},
    )
    return endpoint.process_webhook(
        request.registry["popclips.config"].api_secret, topic=topic
    )


@view_config(route_name="api_shop", request_method="GET")
def api_shop_view(request):
    shop, error_response = request.shop_auth.verify_api_access()
    if error_response:
        return error_response
    return request.web_shim.response_json({"shop": shop.to_public_dict()})


@view_config(route_name="api_subscription", request_method="GET")
def api_subscription_view(request):
    shop, error_response = request.shop_auth.verify_api_access()
    if error_response:
        return error_response
    return request.web_shim.response_json(_billing_service(request).current(shop))


@view_config(route_name="api_subscription_upgrade", request_method="POST")
def api_subscription_upgrade_view(request):
    shop, error_response = request.shop_auth.verify_api_access()
    if error_response:
        return error_response
    return_url = request.web_shim.get_subscription_callback_url(
        {"shop": shop.shopify_domain}
    )
    try:
        confirmation_url = _billing_service(request).upgrade(shop, return_url)
    except BillingError as e:
        return request.web_shim.response_json({"error": e.message}, status=e.status_code)
    return request.web_shim.response_json({"confirmation_url": confirmation_url})


@view_config(route_name="api_subscription_cancel", request_method="POST")
def api_subscription_cancel_view(request):
    shop, error_response = request.shop_auth.verify_api_access()
    if error_response:
        return error_response
    try:
        plan = _billing_service(request).cancel(shop)
    except BillingError as e:
        return request.web_shim.response_json({"error": e.message}, status=e.status_code)
    return request.web_shim.response_json(
        {"message": "Subscription cancelled successfully", "plan": plan}
    )


@view_config(route_name="subscription_callback", request_method="GET")
def subscription_callback_view(request):
    shop, error_response = request.shop_auth.verify_shop_access()
    if error_response:
        return error_response
    try:
        status = _billing_service(request).confirm(shop, request.GET.get("charge_id"))
    except BillingError as e:
        logger.info(f"Billing callback for {shop.shopify_domain} failed: {e.message}")
        billing = "error"
    else:
        billing = "success" if status == SUBSCRIPTION_ACTIVE else "declined"
    return request.web_shim.redirect_302_url(
        request.route_url(
            "admin_pages",
            subpath=("settings",),
            _query={"shop": shop.shopify_domain, "billing": billing},
        )
    )


# Visitor details the widget sends along, kept with the event.
VISITOR_FIELDS = ("visitor_id", "device_type", "browser", "country")


def _owned_event_target(storage_shim, shop, event_type, params):
    """
    Return (clip_id, hotspot_id) for the event if they belong to `shop`.

    None when the clip or hotspot is missing or owned by another shop.
    """
    if event_type in HOTSPOT_EVENT_TYPES:
        hotspot_id = as_int(params.get("hotspot_id"))
        clip_id = storage_shim.get_owned_hotspot_clip_id(shop.id, hotspot_id)
        if clip_id is None:
            return None
        return clip_id, hotspot_id
    clip_id = as_int(params.get("clip_id"))
    if not storage_shim.owns_clip(shop.id, clip_id):
        return None
    return clip_id, None


@view_config(route_name="storefront_track", request_method="POST")
def storefront_track_view(request):
    shop, error_response = request.shop_auth.verify_proxy_access()
    if error_response:
        return error_response
    if not shop:
        return request.web_shim.response_json({"error": "Shop not found"}, status=404)
    try:
        params = json.loads(request.body or b"{}")
    except ValueError:
        return request.web_shim.response_json({"error": "Invalid JSON body"}, status=400)
    if not isinstance(params, dict):
        params = {}
    # The storefront widget sends "event".
    event_type = params.get("event") or params.get("event_type")
    if event_type not in STOREFRONT_EVENT_TYPES:
        return request.web_shim.response_json(
            {"error": "Unknown event type", "allowed": list(STOREFRONT_EVENT_TYPES)},
            status=422,
        )
    target = _owned_event_target(request.storage_shim, shop, event_type, params)
    if target is None:
        logger.info(
            f"Skipping {event_type} for {shop.shopify_domain}, "
            f"clip {params.get('clip_id')} hotspot {params.get('hotspot_id')} not found"
        )
        return request.web_shim.response_json({"success": True, "recorded": False})
    clip_id, hotspot_id = target
    metadata = {k: params[k] for k in VISITOR_FIELDS if params.get(k)}
    if isinstance(params.get("metadata"), dict):
        metadata.update(params["metadata"])
    request.storage_shim.record_event(
        shop.id,
        event_type,
        clip_id=clip_id,
        hotspot_id=hotspot_id,
        session_id=params.get("session_id"),
        shopify_product_id=params.get("product_id"),
        metadata=metadata or None,
    )
    return request.web_shim.response_json({"success": True, "recorded": True}, status=201)
