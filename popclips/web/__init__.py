import logging

from pyramid.config import Configurator
from pyramid.settings import asbool
from sqlalchemy import engine_from_config
from sqlalchemy.orm import sessionmaker

from .. import PopclipsConfig, ShopAuthService
from ..admin_api import ShopifyAdminAPI
from ..scopes import parse_scopes
from ..storage.sqlalchemy_shim import SqlalchemyStorageShim
from ..storage.tables import metadata
from ..webhook_endpoint import HandlerRegistry
from ..webhook_handlers import register_default_handlers
from .pyramid_shim import PyramidWebShim, PyramidWebShimConfig


logger = logging.getLogger(__name__)


DEFAULT_API_VERSION = "2026-01"


def config_from_settings(settings):
    """Build PopclipsConfig from `popclips.*` settings of the ini file."""
    try:
        api_key = settings["popclips.api_key"]
        api_secret = settings["popclips.api_secret"]
    except KeyError as e:
        raise AssertionError(f"Missing required setting {e}")
    return PopclipsConfig(
        api_key=api_key,
        api_secret=api_secret,
        api_version=settings.get("popclips.api_version", DEFAULT_API_VERSION),
        access_scopes=tuple(parse_scopes(settings.get("popclips.scopes", ""))),
        verify_admin_requests=asbool(
            settings.get("popclips.verify_admin_requests", True)
        ),
        remember_shop=asbool(settings.get("popclips.remember_shop", True)),
        shop_cookie_max_age=int(settings.get("popclips.shop_cookie_max_age", 60 * 60)),
        oauth_state_ttl_in_seconds=int(
            settings.get("popclips.oauth_state_ttl_in_seconds", 10 * 60)
        ),
        test_charges=asbool(settings.get("popclips.test_charges", True)),
        http_timeout=float(settings.get("popclips.http_timeout", 10)),
    )


def get_dbsession(request):
    """One session per request, committed unless the request blew up."""
    dbsession = request.registry["popclips.dbsession_factory"]()

    def cleanup(request):
        try:
            if request.exception is not None:
                dbsession.rollback()
            else:
                dbsession.commit()
        finally:
            dbsession.close()

    request.add_finished_callback(cleanup)
    return dbsession


def get_web_shim(request):
    return PyramidWebShim(config=request.registry["popclips.web_shim_config"], request=request)


def get_storage_shim(request):
    return SqlalchemyStorageShim(db=request.dbsession)


def get_shop_auth(request):
    registry = request.registry
    return ShopAuthService(
        config=registry["popclips.config"],
        web_shim=request.web_shim,
        storage_shim=request.storage_shim,
        admin_api=registry["popclips.admin_api"],
    )


def includeme(config):
    settings = config.get_settings()
    popclips_config = config_from_settings(settings)

    engine = engine_from_config(settings, "sqlalchemy.")
    if asbool(settings.get("popclips.create_tables", False)):
        metadata.create_all(engine)

    config.registry["popclips.config"] = popclips_config
    config.registry["popclips.engine"] = engine
    config.registry["popclips.dbsession_factory"] = sessionmaker(bind=engine)
    config.registry["popclips.web_shim_config"] = PyramidWebShimConfig()
    config.registry["popclips.admin_api"] = ShopifyAdminAPI(
        api_version=popclips_config.api_version, timeout=popclips_config.http_timeout
    )
    config.registry["popclips.webhook_registry"] = register_default_handlers(
        HandlerRegistry()
    )

    config.add_request_method(get_dbsession, "dbsession", reify=True)
    config.add_request_method(get_web_shim, "web_shim", reify=True)
    config.add_request_method(get_storage_shim, "storage_shim", reify=True)
    config.add_request_method(get_shop_auth, "shop_auth", reify=True)

    config.add_route("home", "/")
    config.add_route("install", "/install")
    config.add_route("auth_callback", "/auth/callback")
    config.add_route("error", "/error")
    config.add_route("admin_dashboard", "/admin")
    config.add_route("admin_pages", "/admin/*subpath")
    config.add_route("subscription_callback", "/subscription/callback")
    config.add_route("webhook", "/webhooks/{resource}/{event}")
    config.add_route("api_shop", "/api/v1/shop")
    config.add_route("api_subscription", "/api/v1/subscription")
    config.add_route("api_subscription_upgrade", "/api/v1/subscription/upgrade")
    config.add_route("api_subscription_cancel", "/api/v1/subscription/cancel")
    config.add_route("storefront_track", "/api/v1/storefront/track")
    config.scan(".views")
    logger.info(f"Popclips configured for api version {popclips_config.api_version}")


def main(global_config, **settings):
    """This function returns a Pyramid WSGI application."""
    with Configurator(settings=settings) as config:
        config.include(includeme)
    return config.make_wsgi_app()
