import logging
from dataclasses import dataclass

import requests

from .exceptions import BillingError
from .interfaces import IShopifyAdminAPI, IShopStorage
from .models import (
    PLAN_FREE,
    PLAN_PRO,
    SUBSCRIPTION_ACTIVE,
)


logger = logging.getLogger(__name__)


PRO_PLAN_NAME = "Popclips Pro"


PRO_PRICE = "29.99"


PLAN_FEATURES = {
    PLAN_FREE: {
        "standard_carousel": True,
        "custom_carousels": 0,
        "monthly_uploads": 10,
        "basic_analytics": True,
        "advanced_analytics": False,
        "product_hotspots": True,
        "priority_support": False,
    },
    PLAN_PRO: {
        "standard_carousel": True,
        "custom_carousels": 5,
        "monthly_uploads": 50,
        "basic_analytics": True,
        "advanced_analytics": True,
        "product_hotspots": True,
        "priority_support": True,
    },
}


def get_plan_features(plan):
    return dict(PLAN_FEATURES.get(plan, PLAN_FEATURES[PLAN_FREE]))


@dataclass
class BillingService:
    """
    Move a shop between the free and pro plans with shopify's recurring charges.

    A pro subscription starts pending when the charge is created and only
    becomes active once the merchant approves it and shopify reports the
    charge as active.
    """

    storage_shim: IShopStorage
    admin_api: IShopifyAdminAPI
    test_charges: bool = True

    def current(self, shop):
        subscription = self.storage_shim.get_active_subscription(shop.id)
        return {
            "plan": shop.plan,
            "subscription": subscription.to_dict() if subscription else None,
            "features": get_plan_features(shop.plan),
        }

    def upgrade(self, shop, return_url):
        """Create the pro charge and return the url the merchant approves it at."""
        if shop.is_pro:
            raise BillingError("Already on Pro plan")
        try:
            charge = self.admin_api.create_recurring_charge(
                shop.shopify_domain,
                shop.access_token,
                PRO_PLAN_NAME,
                PRO_PRICE,
                return_url,
                test=self.test_charges,
            )
        except requests.RequestException as e:
            logger.error(f"Shopify charge creation error for {shop.shopify_domain}: {e}")
            raise BillingError("Failed to create subscription charge", status_code=500)
        self.storage_shim.create_subscription(
            shop.id, charge.id, PLAN_PRO, PRO_PRICE, currency=charge.currency or "USD"
        )
        return charge.confirmation_url

    def confirm(self, shop, charge_id):
        """
        Handle the merchant coming back from the approval screen.

        Returns the charge status, "active" when the shop is now on pro.
        """
        if not charge_id:
            raise BillingError("Missing charge ID")
        try:
            charge = self.admin_api.get_recurring_charge(
                shop.shopify_domain, shop.access_token, charge_id
            )
        except requests.RequestException as e:
            logger.error(
                f"Shopify get charge error for {shop.shopify_domain} {charge_id}: {e}"
            )
            raise BillingError("Failed to verify charge")
        subscription = self.storage_shim.get_subscription_by_charge_id(
            shop.id, charge_id
        )
        if not subscription:
            raise BillingError("Subscription not found", status_code=404)
        if charge.status == SUBSCRIPTION_ACTIVE:
            self.storage_shim.activate_subscription(subscription)
            logger.info(f"{shop.shopify_domain} upgraded to pro")
        else:
            self.storage_shim.set_subscription_status(subscription, charge.status)
        return charge.status

    def cancel(self, shop):
        subscription = self.storage_shim.get_active_subscription(shop.id)
        if not subscription or not subscription.is_pro:
            raise BillingError("No active Pro subscription to cancel")
        if subscription.shopify_charge_id:
            try:
                self.admin_api.cancel_recurring_charge(
                    shop.shopify_domain, shop.access_token, subscription.shopify_charge_id
                )
            except requests.RequestException as e:
                # Cancelled locally either way.
                logger.error(
                    f"Shopify cancel charge error for {shop.shopify_domain}: {e}"
                )
        self.storage_shim.cancel_subscription(subscription)
        return PLAN_FREE
