"""
What we do for each webhook topic once the delivery is verified.

Every handler has the registry signature
`handler(shop_name, shop_host, topic, params, state)` and finds the storage
for the current request in `state["storage_shim"]`.  All of them are safe to
run again for the same delivery.
"""
import logging

from .models import EVENT_PURCHASE
from .util import as_int


logger = logging.getLogger(__name__)


APP_UNINSTALLED = "app/uninstalled"
SHOP_UPDATE = "shop/update"
ORDERS_PAID = "orders/paid"
CUSTOMERS_DATA_REQUEST = "customers/data_request"
CUSTOMERS_REDACT = "customers/redact"
SHOP_REDACT = "shop/redact"


# Registered with shopify on install, the compliance topics are configured
# in the partner dashboard instead.
INSTALL_WEBHOOK_TOPICS = (APP_UNINSTALLED, SHOP_UPDATE, ORDERS_PAID)


SESSION_ATTRIBUTE = "popclips_session"
CLIP_ATTRIBUTE = "popclips_clip_id"
HOTSPOT_ATTRIBUTE = "popclips_hotspot_id"


def on_app_uninstalled(shop_name, shop_host, topic, params, state):
    logger.info(f"App uninstalled webhook received for {shop_host}")
    shop = state["storage_shim"].deactivate_shop(shop_host)
    if not shop:
        logger.info(f"Uninstalled shop {shop_host} is unknown, nothing to do.")


def on_shop_update(shop_name, shop_host, topic, params, state):
    logger.info(f"Shop update webhook received for {shop_host}")
    state["storage_shim"].update_shop_details(
        shop_host, name=params.get("name"), email=params.get("email")
    )


def on_orders_paid(shop_name, shop_host, topic, params, state):
    """Attribute the order to a clip when the cart carried our note attributes."""
    logger.info(f"Order paid webhook received for {shop_host}: {params.get('id')}")
    storage_shim = state["storage_shim"]
    shop = storage_shim.get_shop(shop_host)
    if not shop:
        return

    attributes = {}
    for attribute in params.get("note_attributes") or []:
        if isinstance(attribute, dict) and attribute.get("name"):
            attributes[attribute["name"]] = attribute.get("value")
    session_id = attributes.get(SESSION_ATTRIBUTE)
    if not session_id:
        return

    total_price = params.get("total_price") or "0"
    storage_shim.record_event(
        shop.id,
        EVENT_PURCHASE,
        clip_id=as_int(attributes.get(CLIP_ATTRIBUTE)),
        hotspot_id=as_int(attributes.get(HOTSPOT_ATTRIBUTE)),
        session_id=session_id,
        revenue=total_price,
        currency=params.get("currency") or "USD",
        metadata={
            "order_id": params.get("id"),
            "order_number": params.get("order_number"),
        },
    )
    logger.info(
        f"Purchase attributed to Popclips for {shop_host}: "
        f"order {params.get('id')}, revenue {total_price}"
    )


def on_customers_data_request(shop_name, shop_host, topic, params, state):
    # We hold no customer data beyond anonymous storefront sessions.
    logger.info(f"Customer data request webhook received for {shop_host}")


def on_customers_redact(shop_name, shop_host, topic, params, state):
    logger.info(f"Customer redact webhook received for {shop_host}")


def on_shop_redact(shop_name, shop_host, topic, params, state):
    logger.info(f"Shop redact webhook received for {shop_host}")
    if not state["storage_shim"].delete_shop(shop_host):
        logger.info(f"Redacted shop {shop_host} is already gone.")


def register_default_handlers(registry):
    registry.add(on_app_uninstalled, topic=APP_UNINSTALLED)
    registry.add(on_shop_update, topic=SHOP_UPDATE)
    registry.add(on_orders_paid, topic=ORDERS_PAID)
    registry.add(on_customers_data_request, topic=CUSTOMERS_DATA_REQUEST)
    registry.add(on_customers_redact, topic=CUSTOMERS_REDACT)
    registry.add(on_shop_redact, topic=SHOP_REDACT)
    return registry
