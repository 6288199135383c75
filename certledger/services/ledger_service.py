# services/ledger_service.py
"""
Simulated ledger commit metadata.

Nothing here talks to a ledger. The transaction id, block height and channel
names are synthesized so that issued records keep the response shape a
Hyperledger Fabric backed deployment would return. No consistency guarantee
may be built on these values.
"""
import random
import string
import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional

DEFAULT_CHANNEL_NAME = "certificate-channel"
DEFAULT_CHAINCODE_NAME = "certificate-cc"
DEFAULT_NETWORK = "hyperledger-fabric"

BLOCK_HEIGHT_MIN = 100000
BLOCK_HEIGHT_MAX = 150000  # exclusive

_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 13


@dataclass(frozen=True)
class LedgerMetadata:
    transactionId: str
    blockHeight: int
    channelName: str
    chaincodeName: str
    network: str

    def to_dict(self):
        return asdict(self)


class LedgerSimulator:
    def __init__(self, channel_name: str = DEFAULT_CHANNEL_NAME,
                 chaincode_name: str = DEFAULT_CHAINCODE_NAME,
                 network: str = DEFAULT_NETWORK,
                 rng: Optional[random.Random] = None,
                 clock_ms: Optional[Callable[[], int]] = None):
        self.channel_name = channel_name
        self.chaincode_name = chaincode_name
        self.network = network
        self._rng = rng or random.SystemRandom()
        self._clock_ms = clock_ms or (lambda: time.time_ns() // 1_000_000)

    def _transaction_id(self) -> str:
        suffix = "".join(self._rng.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
        return f"{self._clock_ms()}-{suffix}"

    def commit(self) -> LedgerMetadata:
        return LedgerMetadata(
            transactionId=self._transaction_id(),
            blockHeight=self._rng.randrange(BLOCK_HEIGHT_MIN, BLOCK_HEIGHT_MAX),
            channelName=self.channel_name,
            chaincodeName=self.chaincode_name,
            network=self.network,
        )
