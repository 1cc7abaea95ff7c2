"""
Peer-to-peer trade escrow.

A seller moves shielded energy into the market escrow identity and hands out
an invite describing the offer. A buyer redeems the invite after paying
publicly; the escrowed amount is shielded into the buyer's balance.

Offer lifecycle:
    OPEN -> SOLD       (terminal)
    OPEN -> CANCELLED  (terminal)
"""

from __future__ import annotations

import base64
import json
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from enum import Enum

from pydantic import BaseModel, Field, ValidationError

from gtx_privacy.core.store import OFFERS_PREFIX, KeyValueStore, namespaced
from gtx_privacy.errors import PrivacyError

logger = logging.getLogger("gtx_privacy.trade")

MARKET_ESCROW = "GridMarketEscrow11111111111111111111111111"


class TradeInviteError(PrivacyError):
    """The invite string is not a valid trade offer."""
    pass


class InvalidTradeTransition(PrivacyError):
    pass


class TradeStatus(str, Enum):
    OPEN = "OPEN"
    SOLD = "SOLD"
    CANCELLED = "CANCELLED"


_ALLOWED_TRANSITIONS = {
    TradeStatus.OPEN: {TradeStatus.SOLD, TradeStatus.CANCELLED},
    TradeStatus.SOLD: set(),
    TradeStatus.CANCELLED: set(),
}


class TradeOffer(BaseModel):
    id: str
    amount: int = Field(gt=0)
    price: float = Field(ge=0)
    seller: str
    timestamp: int
    status: TradeStatus = TradeStatus.OPEN
    signature: str | None = None

    @property
    def total_price(self) -> float:
        return self.amount * self.price


def new_offer_id() -> str:
    return secrets.token_hex(4).upper()


def encode_invite(offer: TradeOffer) -> str:
    data = offer.model_dump(include={"id", "amount", "price", "seller", "timestamp"})
    return base64.urlsafe_b64encode(json.dumps(data).encode("utf-8")).decode("ascii")


def decode_invite(invite: str) -> TradeOffer:
    """
    Raises:
        TradeInviteError: If the invite cannot be decoded or validated.
    """
    try:
        data = json.loads(base64.urlsafe_b64decode(invite.strip().encode("ascii")))
        return TradeOffer(**data)
    except (ValueError, TypeError, UnicodeError, ValidationError) as e:
        raise TradeInviteError("Invalid trade invite") from e


class TradeBook:
    """Offers recorded per seller in the key-value store."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._lock = threading.Lock()

    def offers(self, seller: str) -> list[TradeOffer]:
        return [TradeOffer(**o) for o in self._store.get_json(namespaced(OFFERS_PREFIX, seller), [])]

    def get(self, seller: str, offer_id: str) -> TradeOffer | None:
        for offer in self.offers(seller):
            if offer.id == offer_id:
                return offer
        return None

    def record(self, offer: TradeOffer) -> None:
        with self._lock:
            offers = self.offers(offer.seller)
            offers.append(offer)
            self._save(offer.seller, offers)

    def transition(self, seller: str, offer_id: str, status: TradeStatus) -> TradeOffer:
        """
        Raises:
            InvalidTradeTransition: If the offer is unknown or the move is not allowed.
        """
        with self._lock:
            offers = self.offers(seller)
            for i, offer in enumerate(offers):
                if offer.id != offer_id:
                    continue
                if status not in _ALLOWED_TRANSITIONS[offer.status]:
                    raise InvalidTradeTransition(
                        f"Offer {offer_id} cannot move from {offer.status.value} to {status.value}"
                    )
                offers[i] = offer.model_copy(update={"status": status})
                self._save(seller, offers)
                logger.info(f"Offer {offer_id} -> {status.value}")
                return offers[i]
        raise InvalidTradeTransition(f"Unknown offer {offer_id} for seller {seller[:12]}...")

    def _save(self, seller: str, offers: list[TradeOffer]) -> None:
        self._store.set_json(namespaced(OFFERS_PREFIX, seller), [o.model_dump(mode="json") for o in offers])


class PaymentGateway(ABC):
    """Confirms the buyer's public payment for an offer."""

    @abstractmethod
    def confirm_payment(self, offer: TradeOffer) -> bool:
        ...


class SimulatedPaymentGateway(PaymentGateway):
    """Accepts every payment. Used until a public settlement rail is wired in."""

    def confirm_payment(self, offer: TradeOffer) -> bool:
        logger.info(f"Simulated payment of {offer.total_price} for offer {offer.id}")
        return True
