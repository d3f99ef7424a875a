"""Request-independent service context.

Built once in the application lifespan and handed to every operation by
reference, so runtime resources (the pooled HTTP client, the profile list,
the retry policy) are explicit instead of hidden module globals.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import httpx

from streamgate.config import Settings
from streamgate.services.client_profiles import ClientProfile, ordered_profiles
from streamgate.services.retry import RetryPolicy


@dataclass
class ServiceContext:
    settings: Settings
    client: httpx.AsyncClient
    profiles: Tuple[ClientProfile, ...]
    retry_policy: RetryPolicy

    @classmethod
    def create(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ServiceContext":
        """
        Build a context from settings.

        Args:
            settings: Application settings
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(settings.UPSTREAM_TIMEOUT_SECONDS),
            follow_redirects=True,
        )
        return cls(
            settings=settings,
            client=client,
            profiles=ordered_profiles(settings.CLIENT_PROFILE_ORDER),
            retry_policy=RetryPolicy(
                max_attempts=max(0, settings.RELAY_MAX_RETRIES) + 1,
                base_delay=settings.RELAY_BACKOFF_BASE_SECONDS,
                max_delay=settings.RELAY_BACKOFF_MAX_SECONDS,
            ),
        )

    async def aclose(self) -> None:
        await self.client.aclose()
