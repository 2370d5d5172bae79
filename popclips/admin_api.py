import logging
from dataclasses import dataclass, field, fields

import requests
import zope.interface

from .interfaces import IShopifyAdminAPI
from .scopes import parse_scopes


logger = logging.getLogger(__name__)


SHOP_INFO_QUERY = """
query ShopInfo {
  shop {
    name
    email
    myshopifyDomain
  }
}
"""


@dataclass
class AccessTokenResponse:
    access_token: str
    # The granted scopes.
    access_scopes: list
    # Anything else shopify sent back, ie. online access info.
    remaining_params: dict = field(default_factory=dict)


@dataclass
class Webhook:
    id: int
    topic: str
    address: str
    format: str = "json"
    api_version: str = None
    created_at: str = None
    updated_at: str = None
    fields: list = field(default_factory=list)
    metafield_namespaces: list = field(default_factory=list)
    private_metafield_namespaces: list = field(default_factory=list)
    # Whatever we couldn't match.
    cruft: dict = field(default_factory=dict)


@dataclass
class RecurringCharge:
    id: int
    name: str
    price: str
    status: str
    confirmation_url: str = None
    return_url: str = None
    test: bool = None
    currency: str = None
    billing_on: str = None
    activated_on: str = None
    cancelled_on: str = None
    trial_days: int = 0
    trial_ends_on: str = None
    created_at: str = None
    updated_at: str = None
    # Whatever we couldn't match.
    cruft: dict = field(default_factory=dict)


def coerce_into(cls, d):
    kwargs = {}
    field_by_name = {f.name: f for f in fields(cls)}
    cruft = kwargs["cruft"] = {}
    for k in d:
        if k in field_by_name and k != "cruft":
            kwargs[k] = d[k]
        else:
            cruft[k] = d[k]
    obj = cls(**kwargs)
    if obj.cruft:
        # We save the cruft but don't crash if it exists.
        logger.debug(
            f"Unrecognized keys in {cls.__name__} response: {','.join(obj.cruft.keys())}"
        )
    return obj


@zope.interface.implementer(IShopifyAdminAPI)
@dataclass
class ShopifyAdminAPI:
    """
    Thin client for the handful of admin api calls the auth core needs.

    Every method raises `requests.RequestException` (usually `HTTPError` via
    `raise_for_status`) when shopify says no, callers decide what is fatal.
    """

    api_version: str
    # Seconds, passed straight to requests.
    timeout: float = 10
    session: requests.Session = field(default_factory=requests.Session)

    def get_api_url(self, shop_host, path):
        return f"https://{shop_host}/admin/api/{self.api_version}/{path}"

    def _headers(self, access_token):
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": access_token,
        }

    def request_access_token(self, shop_host, grant_code, api_key, api_secret):
        """
        Use grant code from shopify to fetch the access token using a post request.

        This access token can be used to perform operations using the shopify api.
        """
        response = self.session.post(
            f"https://{shop_host}/admin/oauth/access_token",
            data={
                "client_id": api_key,
                "client_secret": api_secret,
                "code": grant_code,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        json_payload = response.json()
        if not json_payload.get("access_token"):
            raise requests.HTTPError(
                "No access token in token exchange response.", response=response
            )
        remaining_params = {
            k: v for k, v in json_payload.items() if k not in ("access_token", "scope")
        }
        return AccessTokenResponse(
            access_token=json_payload["access_token"],
            access_scopes=parse_scopes(json_payload.get("scope", "")),
            remaining_params=remaining_params,
        )

    def execute_graphql(
        self, shop_host, access_token, query, variables=None, operation_name=None
    ):
        """
        Simple graphql running, no throttling.

        return:
            Returns the response body converted from json.

        raise:
            If the response is not ok, or shopify reports graphql errors, then
            an exception is raised via requests.
        """
        payload = {"query": query}
        if variables:
            payload["variables"] = variables
        if operation_name:
            payload["operationName"] = operation_name
        response = self.session.post(
            self.get_api_url(shop_host, "graphql.json"),
            headers=self._headers(access_token),
            json=payload,
            timeout=self.timeout,
        )
        response.raise_for_status()
        json_payload = response.json()
        if json_payload.get("errors"):
            raise requests.HTTPError(
                f"GraphQL errors: {json_payload['errors']}", response=response
            )
        return json_payload

    def get_shop_info(self, shop_host, access_token):
        json_payload = self.execute_graphql(
            shop_host, access_token, SHOP_INFO_QUERY, operation_name="ShopInfo"
        )
        return (json_payload.get("data") or {}).get("shop") or {}

    def create_webhook(self, shop_host, access_token, topic, address, fields=None):
        payload = {
            "webhook": {
                "topic": topic,
                "address": address,
                # Always send json.
                "format": "json",
            }
        }
        if fields:
            payload["webhook"]["fields"] = fields
        response = self.session.post(
            self.get_api_url(shop_host, "webhooks.json"),
            headers=self._headers(access_token),
            json=payload,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return coerce_into(Webhook, response.json()["webhook"])

    def create_recurring_charge(
        self, shop_host, access_token, name, price, return_url, test=True
    ):
        response = self.session.post(
            self.get_api_url(shop_host, "recurring_application_charges.json"),
            headers=self._headers(access_token),
            json={
                "recurring_application_charge": {
                    "name": name,
                    "price": price,
                    "return_url": return_url,
                    "test": test,
                }
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return coerce_into(
            RecurringCharge, response.json()["recurring_application_charge"]
        )

    def get_recurring_charge(self, shop_host, access_token, charge_id):
        response = self.session.get(
            self.get_api_url(
                shop_host, f"recurring_application_charges/{charge_id}.json"
            ),
            headers=self._headers(access_token),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return coerce_into(
            RecurringCharge, response.json()["recurring_application_charge"]
        )

    def cancel_recurring_charge(self, shop_host, access_token, charge_id):
        response = self.session.delete(
            self.get_api_url(
                shop_host, f"recurring_application_charges/{charge_id}.json"
            ),
            headers=self._headers(access_token),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return True
