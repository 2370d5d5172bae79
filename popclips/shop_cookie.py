import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

import jwt


logger = logging.getLogger(__name__)


HOUR_IN_SECONDS = 60 * 60


@dataclass
class RememberedShopCookie:
    """
    Remember the last shop we resolved for this browser.

    The cookie holds a HS256 JWT signed with the api secret whose only claim
    besides the timestamps is the shop host, so a client can't hand us a shop
    we never resolved for it and it stops working after `max_age` seconds.
    """

    secret: str
    cookie_name: str = "popclips_shop"
    max_age: int = HOUR_IN_SECONDS
    jwt_leeway_in_seconds: int = 5
    audience: str = "popclips:shop"
    utcnow: Callable = field(default=lambda: datetime.now(timezone.utc))

    def dumps(self, shop_host):
        now = self.utcnow()
        return jwt.encode(
            {
                "dest": shop_host,
                "aud": self.audience,
                "iat": now,
                "exp": now + timedelta(seconds=self.max_age),
            },
            self.secret,
            algorithm="HS256",
        )

    def loads(self, token):
        """The shop host in `token` or None if it is bad, expired or missing."""
        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=["HS256"],
                leeway=self.jwt_leeway_in_seconds,
                audience=self.audience,
            )
        except jwt.InvalidTokenError as e:
            logger.debug(f"Ignoring remembered shop cookie: {e}")
            return None
        return payload.get("dest") or None

    def read(self, web_shim):
        return self.loads(web_shim.get_cookie(self.cookie_name))

    def write(self, web_shim, shop_host):
        # The admin is embedded in an iframe so the cookie has to be
        # third-party friendly.
        web_shim.set_cookie(
            self.cookie_name,
            self.dumps(shop_host),
            max_age=self.max_age,
            httponly=True,
            samesite="none",
            secure=True,
        )
