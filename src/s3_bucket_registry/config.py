"""ZConfig configuration and wiring of the refresh pipeline."""

from s3_bucket_registry.credentials import CombinedCredentialSource
from s3_bucket_registry.credentials import Platform
from s3_bucket_registry.credentials import RadosGwCredentialSource
from s3_bucket_registry.credentials import StaticCredentialSource
from s3_bucket_registry.fetcher import BucketFetcher
from s3_bucket_registry.registry import BucketRegistry
from s3_bucket_registry.rgwadmin import RGWAdminClient
from s3_bucket_registry.s3client import S3Session
from s3_bucket_registry.scheduler import RefreshScheduler
from s3_bucket_registry.stats import RadosGwStatsSource

import functools
import os
import ZConfig


SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.xml")


class ConfigurationError(Exception):
    """The configuration cannot be loaded or does not describe a valid setup."""


def _platforms(section):
    return [
        Platform(
            endpoint=p.endpoint,
            name=p.endpoint_name or p.getSectionName(),
            access_key_id=p.access_key_id,
            secret_access_key=p.secret_access_key,
            buckets=tuple(p.buckets or ()),
        )
        for p in section.platforms
    ]


class BaseFactory:
    """ZConfig section factory; ``open`` builds the configured object."""

    def __init__(self, config):
        self.config = config
        self.name = config.getSectionName()

    def open(self, *args, **kwargs):
        raise NotImplementedError


class StaticLocatorFactory(BaseFactory):
    def open(self, allowed_buckets=None, admin_client_factory=RGWAdminClient):
        return StaticCredentialSource(_platforms(self.config))


class RadosGwLocatorFactory(BaseFactory):
    def open(self, allowed_buckets=None, admin_client_factory=RGWAdminClient):
        return RadosGwCredentialSource(
            _platforms(self.config),
            allowed_buckets=allowed_buckets,
            admin_client_factory=functools.partial(
                admin_client_factory, admin_path=self.config.admin_path
            ),
        )


class RadosGwStatsFactory(BaseFactory):
    def open(self, admin_client_factory=RGWAdminClient):
        return RadosGwStatsSource(
            _platforms(self.config),
            admin_client_factory=functools.partial(
                admin_client_factory, admin_path=self.config.admin_path
            ),
        )


def load_config(source):
    """Load a configuration from a path, URL or open file."""
    schema = ZConfig.loadSchema(SCHEMA_PATH)
    try:
        if hasattr(source, "read"):
            config, _handler = ZConfig.loadConfigFile(schema, source)
        else:
            config, _handler = ZConfig.loadConfig(schema, source)
    except ZConfig.ConfigurationError as e:
        raise ConfigurationError(str(e)) from e
    return config


def build_registry(config, admin_client_factory=RGWAdminClient):
    """Wire sources, stats source, fetcher and registry for config."""
    timeouts = {
        "connect_timeout": config.connect_timeout,
        "read_timeout": config.read_timeout,
    }
    admin_client_factory = functools.partial(admin_client_factory, **timeouts)
    allowed_buckets = {}
    if config.allowed_buckets is not None:
        allowed_buckets = dict(config.allowed_buckets.platforms or {})

    try:
        sources = [
            locator.open(allowed_buckets, admin_client_factory)
            for locator in config.locators
        ]
        stats_source = None
        if config.stats is not None:
            stats_source = config.stats.open(admin_client_factory)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    fetcher = BucketFetcher(
        stats_source=stats_source,
        session_factory=functools.partial(S3Session.for_credentials, **timeouts),
    )
    try:
        return BucketRegistry(
            CombinedCredentialSource(sources),
            fetcher,
            max_workers=config.max_workers,
        )
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def build_scheduler(config, registry):
    return RefreshScheduler(registry, interval=config.refresh_interval)
