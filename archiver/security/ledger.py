"""Time-windowed record of recently archived source domains.

The asset proxy is a public endpoint.  It only relays assets for domains that
were archived within the authorization window (or trusted CDNs), so it cannot
be used to fetch arbitrary attacker-chosen URLs.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from archiver.security.trust import is_trusted, normalise_hostname

logger = logging.getLogger(__name__)


class DomainAuthorizationLedger:
    """``domain -> last stamped at`` map with a fixed TTL.

    Mutated only from the event loop, so no locking is required.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time) -> None:
        self.ttl = ttl
        self._clock = clock
        self._stamps: dict[str, float] = {}

    def stamp(self, domain: str) -> None:
        """Record that *domain* was archived just now."""
        key = normalise_hostname(domain)
        if not key:
            return
        self._stamps[key] = self._clock()

    def last_stamped(self, domain: str) -> float | None:
        return self._stamps.get(normalise_hostname(domain))

    def is_authorized(self, domain: str) -> bool:
        """Return ``True`` if *domain* is trusted or was stamped within the TTL."""
        key = normalise_hostname(domain)
        if is_trusted(key):
            return True
        stamped = self._stamps.get(key)
        if stamped is None:
            return False
        return self._clock() - stamped <= self.ttl

    def sweep(self) -> int:
        """Drop expired stamps and return how many were removed."""
        now = self._clock()
        expired = [d for d, ts in self._stamps.items() if now - ts > self.ttl]
        for domain in expired:
            del self._stamps[domain]
        if expired:
            logger.debug("[LEDGER] Swept %d expired domain(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._stamps)

    def __contains__(self, domain: object) -> bool:
        return isinstance(domain, str) and normalise_hostname(domain) in self._stamps
