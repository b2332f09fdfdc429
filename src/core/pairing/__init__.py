# src/core/pairing/__init__.py
"""
Модуль пар и переговоров о цене.
"""

from src.core.pairing.models import DriverPairing, RiderPairing, rider_pairing_id_for
from src.core.pairing.repository import (
    DriverPairingRepository,
    PgDriverPairingRepository,
    PgRiderPairingRepository,
    RiderPairingRepository,
)
from src.core.pairing.service import NegotiationService
from src.core.pairing.synchronizer import PairingSynchronizer

__all__ = [
    "DriverPairing",
    "RiderPairing",
    "rider_pairing_id_for",
    "DriverPairingRepository",
    "RiderPairingRepository",
    "PgDriverPairingRepository",
    "PgRiderPairingRepository",
    "NegotiationService",
    "PairingSynchronizer",
]
