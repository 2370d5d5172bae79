import re


MYSHOPIFY_DOMAIN = "myshopify.com"


def build_shop_host(shop_name, myshopify_domain=MYSHOPIFY_DOMAIN):
    return f"{shop_name}.{myshopify_domain}"


def extract_shop_name(shop_host, myshopify_domain=MYSHOPIFY_DOMAIN):
    suffix = "." + myshopify_domain
    if shop_host and shop_host.endswith(suffix):
        return shop_host[: -len(suffix)]
    return None


def normalize_shop_domain(shop, myshopify_domain=MYSHOPIFY_DOMAIN):
    """
    Coerce whatever the merchant typed into "{shop_name}.myshopify.com".

    "HTTPS://Foo.MyShopify.Com/", "foo.myshopify.com" and "foo" all become
    "foo.myshopify.com".  The result is not validated, see `is_valid_shop_domain`.
    """
    shop_host = shop.strip().lower()
    shop_host = re.sub(r"^https?://", "", shop_host)
    shop_host = shop_host.rstrip("/")
    if not shop_host.endswith("." + myshopify_domain):
        shop_host = build_shop_host(shop_host, myshopify_domain)
    return shop_host


def is_valid_shop_domain(shop_host, myshopify_domain=MYSHOPIFY_DOMAIN):
    # fullmatch so a trailing newline can't sneak past "$".
    pattern = r"[a-z0-9][a-z0-9\-]*\." + re.escape(myshopify_domain)
    return re.fullmatch(pattern, shop_host or "") is not None


def as_int(value):
    """Ids arrive as strings from order attributes and storefront js."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
