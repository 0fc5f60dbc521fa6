"""Owner pairing for the Matrix gateway."""

from matrixgate.pairing.store import Owner, PendingPairing, PairingStore
from matrixgate.pairing.service import (
    PAIRING_CODE_ALPHABET,
    PAIRING_CODE_LENGTH,
    PAIRING_TTL,
    PairingService,
    build_pairing_message,
    generate_code,
)

__all__ = [
    "Owner",
    "PendingPairing",
    "PairingStore",
    "PairingService",
    "PAIRING_CODE_ALPHABET",
    "PAIRING_CODE_LENGTH",
    "PAIRING_TTL",
    "build_pairing_message",
    "generate_code",
]
