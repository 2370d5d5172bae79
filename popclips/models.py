from dataclasses import dataclass, field
from datetime import datetime


PLAN_FREE = "free"


PLAN_PRO = "pro"


@dataclass
class Shop:
    """
    One merchant's installation, keyed by the normalized shop host.

    The access token must never leave the app, use `to_public_dict` for
    anything sent back to a client.
    """

    id: int
    shopify_domain: str
    name: str = None
    email: str = None
    access_token: str = None
    access_scopes: list = field(default_factory=list)
    plan: str = PLAN_FREE
    plan_started_at: datetime = None
    is_active: bool = True
    installed_at: datetime = None
    created_at: datetime = None
    updated_at: datetime = None

    @property
    def is_pro(self):
        return self.plan == PLAN_PRO

    def to_public_dict(self):
        return {
            "id": self.id,
            "shopify_domain": self.shopify_domain,
            "name": self.name,
            "email": self.email,
            "plan": self.plan,
            "is_active": self.is_active,
            "installed_at": self.installed_at.isoformat()
            if self.installed_at
            else None,
        }


@dataclass
class OAuthState:
    """
    Holds the nonce between the authorize redirect and shopify's callback.

    Used once, the callback deletes it whether or not it matches.
    """

    nonce: str
    # The normalized shop host the install was started for.
    shopify_domain: str
    expires_at_utcstamp: str
    created_at: datetime = None


SUBSCRIPTION_PENDING = "pending"
SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_CANCELLED = "cancelled"


@dataclass
class Subscription:
    id: int
    shop_id: int
    plan: str
    status: str
    price: str
    currency: str = "USD"
    shopify_charge_id: str = None
    activated_at: datetime = None
    cancelled_at: datetime = None
    created_at: datetime = None
    updated_at: datetime = None

    @property
    def is_active(self):
        return self.status == SUBSCRIPTION_ACTIVE

    @property
    def is_pro(self):
        return self.plan == PLAN_PRO and self.is_active

    def to_dict(self):
        return {
            "id": self.id,
            "plan": self.plan,
            "status": self.status,
            "price": self.price,
            "currency": self.currency,
            "shopify_charge_id": self.shopify_charge_id,
            "activated_at": self.activated_at.isoformat()
            if self.activated_at
            else None,
            "cancelled_at": self.cancelled_at.isoformat()
            if self.cancelled_at
            else None,
        }


EVENT_CLIP_VIEW = "clip_view"
EVENT_CLIP_COMPLETE = "clip_complete"
EVENT_HOTSPOT_CLICK = "hotspot_click"
EVENT_ADD_TO_CART = "add_to_cart"
EVENT_PURCHASE = "purchase"
EVENT_LIKE = "like"
EVENT_SHARE = "share"


# Purchases only come in through the orders/paid webhook.
STOREFRONT_EVENT_TYPES = (
    EVENT_CLIP_VIEW,
    EVENT_CLIP_COMPLETE,
    EVENT_HOTSPOT_CLICK,
    EVENT_ADD_TO_CART,
    EVENT_LIKE,
    EVENT_SHARE,
)


# These name a hotspot, the rest of the storefront events name a clip.
HOTSPOT_EVENT_TYPES = (EVENT_HOTSPOT_CLICK, EVENT_ADD_TO_CART)
