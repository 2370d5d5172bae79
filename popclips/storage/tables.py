from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
)


metadata = MetaData()


shops = Table(
    "shops",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("shopify_domain", String(255), nullable=False, unique=True),
    Column("name", String(255)),
    Column("email", String(255)),
    Column("access_token", String(255)),
    Column("access_scopes", JSON),
    Column("plan", String(16), nullable=False, default="free"),
    Column("plan_started_at", DateTime(timezone=True)),
    Column("is_active", Boolean, nullable=False, default=True, index=True),
    Column("installed_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)


oauth_states = Table(
    "oauth_states",
    metadata,
    Column("nonce", String(64), primary_key=True),
    Column("shopify_domain", String(255), nullable=False, index=True),
    # isoformat so the timezone survives every backend.
    Column("expires_at_utcstamp", String(64), nullable=False),
    Column("created_at", DateTime(timezone=True)),
)


subscriptions = Table(
    "subscriptions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("shop_id", Integer, ForeignKey("shops.id"), nullable=False, index=True),
    Column("shopify_charge_id", String(64), index=True),
    Column("plan", String(16), nullable=False, default="free"),
    # Kept as the string shopify uses, ie. "29.99".
    Column("price", String(16), nullable=False, default="0.00"),
    Column("currency", String(3), nullable=False, default="USD"),
    Column("status", String(16), nullable=False, default="pending"),
    Column("activated_at", DateTime(timezone=True)),
    Column("cancelled_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)


clips = Table(
    "clips",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("shop_id", Integer, ForeignKey("shops.id"), nullable=False, index=True),
    Column("title", String(255), nullable=False),
    Column("shopify_file_id", String(255)),
    Column("video_url", String(1024)),
    Column("created_at", DateTime(timezone=True)),
)


hotspots = Table(
    "hotspots",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("clip_id", Integer, ForeignKey("clips.id"), nullable=False, index=True),
    Column("shopify_product_id", String(64)),
    Column("start_time", Integer),
    Column("end_time", Integer),
)


carousels = Table(
    "carousels",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("shop_id", Integer, ForeignKey("shops.id"), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("created_at", DateTime(timezone=True)),
)


carousel_clips = Table(
    "carousel_clips",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("carousel_id", Integer, ForeignKey("carousels.id"), nullable=False),
    Column("clip_id", Integer, ForeignKey("clips.id"), nullable=False),
    Column("position", Integer, nullable=False, default=0),
)


analytics = Table(
    "analytics",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("shop_id", Integer, ForeignKey("shops.id"), nullable=False, index=True),
    # No foreign keys, order attributes can point at clips deleted since.
    Column("clip_id", Integer),
    Column("hotspot_id", Integer),
    Column("event_type", String(32), nullable=False),
    Column("session_id", String(255)),
    Column("shopify_product_id", String(64)),
    Column("revenue", String(16)),
    Column("currency", String(3), nullable=False, default="USD"),
    Column("metadata", JSON),
    Column("created_at", DateTime(timezone=True)),
)
