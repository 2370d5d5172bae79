import json
import logging
from dataclasses import dataclass, field
from typing import Callable

import zope.interface

from .interfaces import IWebShim, IWebhookHandlerRegistry
from .signatures import WEBHOOK_SIGNATURE_HEADER, verify_webhook_hmac
from .util import extract_shop_name


logger = logging.getLogger(__name__)


TOPIC_HEADER = "X-Shopify-Topic"


SHOP_DOMAIN_HEADER = "X-Shopify-Shop-Domain"


@dataclass
class HandlerRegistration:
    handler: Callable
    topic: str = None
    # higher gets called first
    priority: int = 0


@zope.interface.implementer(IWebhookHandlerRegistry)
@dataclass
class HandlerRegistry:
    registrations: list = field(default_factory=list)

    def add(self, webhook_handler, topic=None, priority=0):
        self.registrations.append(HandlerRegistration(webhook_handler, topic, priority))

    def matches(self, topic):
        """
        Get registered handlers that match the given topic, high priority first.
        """
        regs = filter(
            lambda reg: reg.topic == topic or not reg.topic, self.registrations
        )
        return sorted(regs, key=lambda reg: reg.priority, reverse=True)

    def topics(self):
        return sorted({reg.topic for reg in self.registrations if reg.topic})


@dataclass
class WebhookEndpointService:
    """
    Receive webhooks from shopify.

    The signature is checked against the raw body before anything is parsed
    and before any handler runs.  Once verified we always acknowledge with
    200, shopify retries anything else and the outcome of our handlers is
    none of its business.

    @NOTE: Deliveries are at-least-once, handlers must tolerate repeats.
    """

    web_shim: IWebShim

    registry: IWebhookHandlerRegistry

    # Allow state to be made and passed to chain of handlers called for a
    # webhook, ie. the storage for this request.
    handler_state_maker: Callable = field(default=dict)

    logger: object = field(default=logger)

    def process_webhook(self, api_secret, topic=None):
        body = self.web_shim.get_request_body()
        if not verify_webhook_hmac(
            body, self.web_shim.get_header(WEBHOOK_SIGNATURE_HEADER), api_secret
        ):
            self.logger.error("Webhook HMAC BAD, rejecting delivery.")
            return self.web_shim.response_json(
                {"error": "Invalid webhook signature"}, status=401
            )

        if not topic:
            topic = self.web_shim.get_header(TOPIC_HEADER)
        params = self.parse_body(body)
        shop_host = self.web_shim.get_header(SHOP_DOMAIN_HEADER) or params.get(
            "shop_domain"
        )
        shop_name = extract_shop_name(shop_host) if shop_host else None

        regs = self.registry.matches(topic)
        if not regs:
            self.logger.warning(f"No handler registrations matched topic: {topic}")
        state = self.handler_state_maker()
        for reg in regs:
            reg.handler(shop_name, shop_host, topic, params, state)
        return self.web_shim.response_json({"success": True})

    def parse_body(self, body):
        if not body:
            return {}
        try:
            params = json.loads(body)
        except ValueError:
            self.logger.warning("Webhook body is not json, handlers get no params.")
            return {}
        return params if isinstance(params, dict) else {}
