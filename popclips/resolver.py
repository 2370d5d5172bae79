import logging
from dataclasses import dataclass

from .exceptions import ShopInactive, ShopNotFound, ShopRequired
from .interfaces import IShopStorage, IWebShim
from .shop_cookie import RememberedShopCookie
from .util import MYSHOPIFY_DOMAIN, normalize_shop_domain


logger = logging.getLogger(__name__)


SHOP_PARAM = "shop"


SHOP_HEADER = "X-Shop-Domain"


SOURCE_PARAM = "param"
SOURCE_HEADER = "header"
SOURCE_COOKIE = "cookie"


@dataclass
class ShopResolver:
    """
    Work out which shop a request is for.

    Looked for in order: the `shop` query param, the X-Shop-Domain header and
    finally the remembered shop cookie.  The first non-empty one wins, the
    later ones are not consulted at all.
    """

    web_shim: IWebShim
    storage_shim: IShopStorage
    # When None nothing is remembered between requests.
    remembered_shop: RememberedShopCookie = None
    myshopify_domain: str = MYSHOPIFY_DOMAIN

    def find_candidate(self):
        """Returns a 2-tuple of (raw shop value, source) or (None, None)."""
        shop_value = (self.web_shim.get_param(SHOP_PARAM) or "").strip()
        if shop_value:
            return shop_value, SOURCE_PARAM
        shop_value = (self.web_shim.get_header(SHOP_HEADER) or "").strip()
        if shop_value:
            return shop_value, SOURCE_HEADER
        if self.remembered_shop:
            shop_value = self.remembered_shop.read(self.web_shim)
            if shop_value:
                return shop_value, SOURCE_COOKIE
        return None, None

    def resolve(self, remember=True):
        """
        Return the active shop for this request or raise a ShopResolutionError.

        On success the shop is attached to the request and, if `remember`,
        written back to the cookie.
        """
        shop_value, source = self.find_candidate()
        if not shop_value:
            first_active = self.storage_shim.first_active_shop()
            raise ShopRequired(first_active.shopify_domain if first_active else None)

        shop_host = normalize_shop_domain(shop_value, self.myshopify_domain)
        shop = self.storage_shim.get_active_shop(shop_host)
        if not shop:
            if self.storage_shim.get_shop(shop_host):
                logger.info(f"Shop {shop_host} from {source} is inactive.")
                raise ShopInactive(shop_host)
            logger.info(f"Shop {shop_host} from {source} was not found.")
            raise ShopNotFound(shop_host, self.storage_shim.list_active_shop_hosts())

        self.web_shim.set_current_shop(shop)
        if remember:
            self.remember(shop)
        return shop

    def remember(self, shop):
        if self.remembered_shop:
            self.remembered_shop.write(self.web_shim, shop.shopify_domain)
