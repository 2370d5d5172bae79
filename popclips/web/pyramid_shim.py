from dataclasses import dataclass

from pyramid.request import Request
from pyramid.httpexceptions import HTTPFound
import zope.interface

from ..interfaces import IWebShim


@dataclass
class PyramidWebShimConfig:
    install_route: str = "install"
    auth_callback_route: str = "auth_callback"
    home_route: str = "admin_dashboard"
    error_route: str = "error"
    webhook_route: str = "webhook"
    subscription_callback_route: str = "subscription_callback"


@zope.interface.implementer(IWebShim)
@dataclass
class PyramidWebShim:
    """Shim between the popclips services and pyramid for web tasks."""

    # Configuration params that describe how we should behave.
    config: PyramidWebShimConfig
    # The current request.
    request: Request

    def set_cookie(
        self,
        name,
        value,
        max_age=None,
        httponly=True,
        samesite="lax",
        secure=True,
    ):
        self.request.response.set_cookie(
            name,
            value,
            httponly=httponly,
            samesite=samesite,
            secure=secure,
            max_age=max_age,
        )

    def get_cookie(self, name, default=None):
        return self.request.cookies.get(name, default)

    def _route_url(self, route_name, get_params=None, **kwargs):
        if get_params:
            kwargs.setdefault("_query", {}).update(get_params)
        return self.request.route_url(route_name, **kwargs)

    def get_home_url(self, get_params=None):
        return self._route_url(self.config.home_route, get_params)

    def get_install_url(self, get_params=None):
        return self._route_url(self.config.install_route, get_params)

    def get_auth_callback_url(self):
        return self._route_url(self.config.auth_callback_route)

    def get_error_url(self, reason):
        return self._route_url(self.config.error_route, {"reason": reason})

    def get_webhook_url(self, topic):
        resource, event = topic.split("/", 1)
        return self._route_url(self.config.webhook_route, resource=resource, event=event)

    def get_subscription_callback_url(self, get_params=None):
        return self._route_url(self.config.subscription_callback_route, get_params)

    def response_json(self, payload, status=200):
        # Reuse request.response so cookies and headers set earlier survive.
        response = self.request.response
        response.status_int = status
        response.content_type = "application/json"
        response.json_body = payload
        return response

    def redirect_302_url(self, url, with_headers=True):
        """Return a redirect carrying any cookies set on this request."""
        kwargs = {}
        if with_headers:
            kwargs["headers"] = [
                (k, v)
                for (k, v) in self.request.response.headerlist
                if k.lower() == "set-cookie"
            ]
        return HTTPFound(url, **kwargs)

    def get_header(self, name, default=None):
        return self.request.headers.get(name, default)

    def set_header(self, name, value):
        self.request.response.headers[name] = value

    def get_param(self, name, default=None):
        return self.request.GET.get(name, default)

    def get_param_items(self):
        return list(self.request.GET.items())

    def get_request_body(self):
        return self.request.body

    def set_current_shop(self, shop):
        self.request.shop = shop
