INSTALL_HINT = "Install the app first by visiting /install?shop=your-store.myshopify.com"


class PopclipsError(Exception):
    pass


class ShopResolutionError(PopclipsError):
    """
    The shop for a request could not be worked out.

    These are deliberately chatty, they are read by merchants and developers
    trying to load the embedded app with a bad url.
    """

    status_code = 401

    def payload(self):
        raise NotImplementedError


class ShopRequired(ShopResolutionError):
    def __init__(self, suggested_shop_host=None):
        super().__init__("Shop domain required")
        self.suggested_shop_host = suggested_shop_host

    def payload(self):
        if self.suggested_shop_host:
            hint = f"Try adding ?shop={self.suggested_shop_host} to your URL"
        else:
            hint = INSTALL_HINT
        return {
            "error": "Shop domain required",
            "message": "No shop domain was found in the shop parameter, "
            "the X-Shop-Domain header or the session",
            "hint": hint,
        }


class ShopInactive(ShopResolutionError):
    def __init__(self, shop_host):
        super().__init__(f"Shop is inactive: {shop_host}")
        self.shop_host = shop_host

    def payload(self):
        return {
            "error": "Shop is inactive",
            "message": "This shop exists but is currently inactive",
            "shop_domain": self.shop_host,
        }


class ShopNotFound(ShopResolutionError):
    status_code = 404

    def __init__(self, shop_host, active_shop_hosts):
        super().__init__(f"Shop not found: {shop_host}")
        self.shop_host = shop_host
        self.active_shop_hosts = list(active_shop_hosts)

    def payload(self):
        if self.active_shop_hosts:
            hint = f"Did you mean {self.active_shop_hosts[0]}?"
        else:
            hint = INSTALL_HINT
        return {
            "error": "Shop not found",
            "message": f"No shop found with domain: {self.shop_host}",
            "provided_domain": self.shop_host,
            "active_shops": self.active_shop_hosts,
            "hint": hint,
        }


class InvalidSignature(PopclipsError):
    """Never say whether the signature was missing or just wrong."""

    reason = "invalid_signature"


class InstallError(PopclipsError):
    """Ends the install flow, `reason` picks the text shown on the error page."""

    reason = "install_failed"


class InstallDomainInvalid(InstallError):
    reason = "invalid_shop"


class MissingOAuthParameters(InstallError):
    reason = "missing_parameters"


class InvalidOAuthState(InstallError):
    reason = "invalid_state"


class TokenExchangeFailed(InstallError):
    reason = "token_exchange_failed"


class BillingError(PopclipsError):
    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
