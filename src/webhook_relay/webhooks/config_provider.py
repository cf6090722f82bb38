"""Webhook configuration providers.

The processor resolves a webhook's configuration once per delivery attempt
through an injected async callable, ``resolve(webhook_id) -> WebhookConfig
| None``. Tests pass a StaticConfigProvider; production wraps the
configuration store's loader in a CachingConfigProvider.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from webhook_relay.models import WebhookConfig

logger = logging.getLogger(__name__)

ConfigResolver = Callable[[str], Awaitable[WebhookConfig | None]]
ConfigLoader = Callable[[str], Awaitable[WebhookConfig | None]]

# Loader errors worth retrying: the store may be briefly unreachable
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    httpx.TransportError,
)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log retry attempts with context."""
    logger.warning(
        "Retrying webhook config load",
        extra={
            "attempt": retry_state.attempt_number,
            "exception": str(retry_state.outcome.exception()) if retry_state.outcome else None,
        },
    )


class StaticConfigProvider:
    """In-memory configuration map.

    Example:
        ```python
        provider = StaticConfigProvider([config])
        processor = QueueProcessor(queue, sender, provider)
        provider.set_config(updated_config)
        ```
    """

    def __init__(self, configs: Iterable[WebhookConfig] = ()) -> None:
        self._configs = {config.id: config for config in configs}

    async def __call__(self, webhook_id: str) -> WebhookConfig | None:
        return self._configs.get(webhook_id)

    def set_config(self, config: WebhookConfig) -> None:
        self._configs[config.id] = config

    def remove_config(self, webhook_id: str) -> None:
        self._configs.pop(webhook_id, None)


class CachingConfigProvider:
    """Caches configurations from a slow loader for ``ttl_seconds``.

    Transient loader errors are retried with exponential backoff. When the
    loader keeps failing the lookup logs the error and reports the config
    as missing, which fails the delivery attempt; the queue retries it
    later.
    """

    def __init__(
        self,
        loader: ConfigLoader,
        ttl_seconds: float = 300.0,
        retry_attempts: int = 3,
        retry_wait_seconds: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the provider.

        Args:
            loader: Async function fetching one config from the store.
            ttl_seconds: How long a loaded config is served from cache.
            retry_attempts: Loader attempts per lookup.
            retry_wait_seconds: Base wait between loader attempts.
            clock: Monotonic time source.
        """
        self._loader = loader
        self._ttl = ttl_seconds
        self._retry_attempts = retry_attempts
        self._retry_wait = retry_wait_seconds
        self._clock = clock
        self._cache: dict[str, tuple[WebhookConfig, float]] = {}

    async def __call__(self, webhook_id: str) -> WebhookConfig | None:
        return await self.get_webhook_config(webhook_id)

    async def get_webhook_config(self, webhook_id: str) -> WebhookConfig | None:
        cached = self._cache.get(webhook_id)
        if cached is not None:
            config, expires_at = cached
            if self._clock() < expires_at:
                return config
            del self._cache[webhook_id]

        try:
            config = await self._load(webhook_id)
        except (RetryError, *TRANSIENT_ERRORS) as e:
            logger.error("Failed to load webhook config %s: %s", webhook_id, e)
            return None

        if config is not None:
            self._cache[webhook_id] = (config, self._clock() + self._ttl)
        return config

    async def _load(self, webhook_id: str) -> WebhookConfig | None:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=self._retry_wait, max=10),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                return await self._loader(webhook_id)
        return None

    def invalidate(self, webhook_id: str | None = None) -> None:
        """Drop one cached config, or the whole cache."""
        if webhook_id is None:
            self._cache.clear()
        else:
            self._cache.pop(webhook_id, None)
