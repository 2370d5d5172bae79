from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.orm import Session
from sqlalchemy.sql import delete, insert, select, update
import zope.interface

from ..interfaces import IShopStorage
from ..models import (
    PLAN_FREE,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_CANCELLED,
    SUBSCRIPTION_PENDING,
    OAuthState,
    Shop,
    Subscription,
)
from . import tables


def _record_from_row(cls, row):
    if row is None:
        return None
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in row.items() if k in names})


@zope.interface.implementer(IShopStorage)
@dataclass
class SqlalchemyStorageShim:
    """
    Store shops and their dependents with SQLAlchemy core.

    Nothing here commits, the caller owns the transaction.
    """

    db: Session

    utcnow: Callable = field(default=lambda: datetime.now(timezone.utc))
    read_utcstamp: Callable = field(
        default=lambda utcstamp: datetime.fromisoformat(utcstamp)
    )

    mark_changed: Callable = None

    def _changed(self):
        if self.mark_changed:
            self.mark_changed(self.db)

    def _first(self, statement):
        return self.db.execute(statement).mappings().first()

    """
    Shops
    """

    def get_shop(self, shop_host):
        return _record_from_row(
            Shop,
            self._first(
                select(tables.shops).where(tables.shops.c.shopify_domain == shop_host)
            ),
        )

    def get_active_shop(self, shop_host):
        return _record_from_row(
            Shop,
            self._first(
                select(tables.shops).where(
                    tables.shops.c.shopify_domain == shop_host,
                    tables.shops.c.is_active.is_(True),
                )
            ),
        )

    def first_active_shop(self):
        return _record_from_row(
            Shop,
            self._first(
                select(tables.shops)
                .where(tables.shops.c.is_active.is_(True))
                .order_by(tables.shops.c.id)
                .limit(1)
            ),
        )

    def list_active_shop_hosts(self):
        return list(
            self.db.execute(
                select(tables.shops.c.shopify_domain)
                .where(tables.shops.c.is_active.is_(True))
                .order_by(tables.shops.c.id)
            ).scalars()
        )

    def save_installed_shop(self, shop_host, name, email, access_token, access_scopes):
        """Create or update the shop keyed by its host and mark it installed."""
        now = self.utcnow()
        values = dict(
            name=name,
            email=email,
            access_token=access_token,
            access_scopes=list(access_scopes),
            is_active=True,
            installed_at=now,
            updated_at=now,
        )
        if self.get_shop(shop_host):
            self.db.execute(
                update(tables.shops)
                .where(tables.shops.c.shopify_domain == shop_host)
                .values(**values)
            )
        else:
            self.db.execute(
                insert(tables.shops).values(
                    shopify_domain=shop_host, plan=PLAN_FREE, created_at=now, **values
                )
            )
        self._changed()
        return self.get_shop(shop_host)

    def update_shop_details(self, shop_host, name=None, email=None):
        values = {}
        if name is not None:
            values["name"] = name
        if email is not None:
            values["email"] = email
        if not values:
            return False
        values["updated_at"] = self.utcnow()
        result = self.db.execute(
            update(tables.shops)
            .where(tables.shops.c.shopify_domain == shop_host)
            .values(**values)
        )
        self._changed()
        return result.rowcount > 0

    def deactivate_shop(self, shop_host):
        """
        Forget the token and mark the shop inactive, cancelling subscriptions.

        Returns the shop as it was before or None if we never heard of it,
        calling this again for the same shop is harmless.
        """
        shop = self.get_shop(shop_host)
        if not shop:
            return None
        now = self.utcnow()
        self.db.execute(
            update(tables.shops)
            .where(tables.shops.c.id == shop.id)
            .values(access_token=None, is_active=False, plan=PLAN_FREE, updated_at=now)
        )
        self.db.execute(
            update(tables.subscriptions)
            .where(
                tables.subscriptions.c.shop_id == shop.id,
                tables.subscriptions.c.status == SUBSCRIPTION_ACTIVE,
            )
            .values(status=SUBSCRIPTION_CANCELLED, cancelled_at=now, updated_at=now)
        )
        self._changed()
        return shop

    def delete_shop(self, shop_host):
        """
        Hard delete the shop and everything that belongs to it.

        Returns False when there was nothing to delete.
        """
        shop = self.get_shop(shop_host)
        if not shop:
            return False
        clip_ids = select(tables.clips.c.id).where(tables.clips.c.shop_id == shop.id)
        carousel_ids = select(tables.carousels.c.id).where(
            tables.carousels.c.shop_id == shop.id
        )
        # Children first so foreign keys never dangle.
        self.db.execute(
            delete(tables.analytics).where(tables.analytics.c.shop_id == shop.id)
        )
        self.db.execute(
            delete(tables.carousel_clips).where(
                tables.carousel_clips.c.carousel_id.in_(carousel_ids)
                | tables.carousel_clips.c.clip_id.in_(clip_ids)
            )
        )
        self.db.execute(
            delete(tables.hotspots).where(tables.hotspots.c.clip_id.in_(clip_ids))
        )
        self.db.execute(
            delete(tables.carousels).where(tables.carousels.c.shop_id == shop.id)
        )
        self.db.execute(delete(tables.clips).where(tables.clips.c.shop_id == shop.id))
        self.db.execute(
            delete(tables.subscriptions).where(
                tables.subscriptions.c.shop_id == shop.id
            )
        )
        self.db.execute(
            delete(tables.oauth_states).where(
                tables.oauth_states.c.shopify_domain == shop_host
            )
        )
        self.db.execute(delete(tables.shops).where(tables.shops.c.id == shop.id))
        self._changed()
        return True

    """
    OAuth states
    """

    def store_oauth_state(self, oauth_state):
        self.db.execute(
            insert(tables.oauth_states).values(
                nonce=oauth_state.nonce,
                shopify_domain=oauth_state.shopify_domain,
                expires_at_utcstamp=oauth_state.expires_at_utcstamp,
                created_at=oauth_state.created_at or self.utcnow(),
            )
        )
        self._changed()
        return oauth_state

    def consume_oauth_state(self, nonce):
        """Load and delete the state in one go so it can only be used once."""
        if not nonce:
            return None
        oauth_state = _record_from_row(
            OAuthState,
            self._first(
                select(tables.oauth_states).where(tables.oauth_states.c.nonce == nonce)
            ),
        )
        if oauth_state:
            self.db.execute(
                delete(tables.oauth_states).where(tables.oauth_states.c.nonce == nonce)
            )
            self._changed()
        return oauth_state

    def has_pending_oauth_state(self, shop_host):
        now = self.utcnow()
        stamps = self.db.execute(
            select(tables.oauth_states.c.expires_at_utcstamp).where(
                tables.oauth_states.c.shopify_domain == shop_host
            )
        ).scalars()
        return any(self.read_utcstamp(stamp) > now for stamp in stamps)

    """
    Subscriptions
    """

    def get_active_subscription(self, shop_id):
        return _record_from_row(
            Subscription,
            self._first(
                select(tables.subscriptions)
                .where(
                    tables.subscriptions.c.shop_id == shop_id,
                    tables.subscriptions.c.status == SUBSCRIPTION_ACTIVE,
                )
                .order_by(tables.subscriptions.c.id.desc())
                .limit(1)
            ),
        )

    def get_subscription_by_charge_id(self, shop_id, charge_id):
        return _record_from_row(
            Subscription,
            self._first(
                select(tables.subscriptions).where(
                    tables.subscriptions.c.shop_id == shop_id,
                    tables.subscriptions.c.shopify_charge_id == str(charge_id),
                )
            ),
        )

    def create_subscription(self, shop_id, charge_id, plan, price, currency="USD"):
        now = self.utcnow()
        result = self.db.execute(
            insert(tables.subscriptions).values(
                shop_id=shop_id,
                shopify_charge_id=str(charge_id),
                plan=plan,
                price=price,
                currency=currency,
                status=SUBSCRIPTION_PENDING,
                created_at=now,
                updated_at=now,
            )
        )
        self._changed()
        return _record_from_row(
            Subscription,
            self._first(
                select(tables.subscriptions).where(
                    tables.subscriptions.c.id == result.inserted_primary_key[0]
                )
            ),
        )

    def activate_subscription(self, subscription):
        now = self.utcnow()
        self.db.execute(
            update(tables.subscriptions)
            .where(tables.subscriptions.c.id == subscription.id)
            .values(status=SUBSCRIPTION_ACTIVE, activated_at=now, updated_at=now)
        )
        self.db.execute(
            update(tables.shops)
            .where(tables.shops.c.id == subscription.shop_id)
            .values(plan=subscription.plan, plan_started_at=now, updated_at=now)
        )
        self._changed()

    def cancel_subscription(self, subscription):
        now = self.utcnow()
        self.db.execute(
            update(tables.subscriptions)
            .where(tables.subscriptions.c.id == subscription.id)
            .values(status=SUBSCRIPTION_CANCELLED, cancelled_at=now, updated_at=now)
        )
        self.db.execute(
            update(tables.shops)
            .where(tables.shops.c.id == subscription.shop_id)
            .values(plan=PLAN_FREE, updated_at=now)
        )
        self._changed()

    def set_subscription_status(self, subscription, status):
        self.db.execute(
            update(tables.subscriptions)
            .where(tables.subscriptions.c.id == subscription.id)
            .values(status=status, updated_at=self.utcnow())
        )
        self._changed()

    """
    Analytics
    """

    def owns_clip(self, shop_id, clip_id):
        if clip_id is None:
            return False
        return (
            self._first(
                select(tables.clips.c.id).where(
                    tables.clips.c.id == clip_id, tables.clips.c.shop_id == shop_id
                )
            )
            is not None
        )

    def get_owned_hotspot_clip_id(self, shop_id, hotspot_id):
        """The clip id of the hotspot if its clip belongs to the shop, else None."""
        if hotspot_id is None:
            return None
        return self.db.execute(
            select(tables.hotspots.c.clip_id)
            .select_from(
                tables.hotspots.join(
                    tables.clips, tables.hotspots.c.clip_id == tables.clips.c.id
                )
            )
            .where(
                tables.hotspots.c.id == hotspot_id,
                tables.clips.c.shop_id == shop_id,
            )
        ).scalar()

    def record_event(
        self,
        shop_id,
        event_type,
        clip_id=None,
        hotspot_id=None,
        session_id=None,
        shopify_product_id=None,
        revenue=None,
        currency="USD",
        metadata=None,
    ):
        self.db.execute(
            insert(tables.analytics).values(
                shop_id=shop_id,
                event_type=event_type,
                clip_id=clip_id,
                hotspot_id=hotspot_id,
                session_id=session_id,
                shopify_product_id=shopify_product_id,
                revenue=None if revenue is None else str(revenue),
                currency=currency,
                metadata=metadata,
                created_at=self.utcnow(),
            )
        )
        self._changed()
