# services/id_service.py
"""
Human-readable certificate identifiers of the form CERT-<year>-<NNNNN>.

Ids are random, so two calls can collide; the issuance service resolves
collisions with an insert-if-absent write and a retry.
"""
import random
import re
from datetime import datetime, timezone
from typing import Callable, Optional

CERTIFICATE_ID_PATTERN = re.compile(r"^CERT-\d{4}-\d{5}$")


class CertificateIdGenerator:
    def __init__(self, rng: Optional[random.Random] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self._rng = rng or random.SystemRandom()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def next_id(self) -> str:
        year = self._clock().year
        return f"CERT-{year}-{self._rng.randrange(100000):05d}"


def is_certificate_id(value) -> bool:
    return isinstance(value, str) and bool(CERTIFICATE_ID_PATTERN.match(value))
