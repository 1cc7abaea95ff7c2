"""
Unit tests for gtx_privacy.engine.trade: offers, invites and the OPEN/SOLD/CANCELLED machine.
"""

import base64

import pytest

from gtx_privacy.core.store import MemoryStore
from gtx_privacy.engine.trade import (
    InvalidTradeTransition,
    SimulatedPaymentGateway,
    TradeBook,
    TradeInviteError,
    TradeOffer,
    TradeStatus,
    decode_invite,
    encode_invite,
    new_offer_id,
)

SELLER = "02" + "d4" * 32


def _offer(**overrides) -> TradeOffer:
    data = dict(id=new_offer_id(), amount=100, price=0.15, seller=SELLER, timestamp=1_700_000_000_000)
    data.update(overrides)
    return TradeOffer(**data)


class TestInvite:

    def test_roundtrip_carries_offer_terms(self):
        offer = _offer()
        decoded = decode_invite(encode_invite(offer))
        assert (decoded.id, decoded.amount, decoded.price, decoded.seller) == (offer.id, 100, 0.15, SELLER)
        assert decoded.status == TradeStatus.OPEN

    def test_invite_does_not_leak_status_or_signature(self):
        raw = base64.urlsafe_b64decode(encode_invite(_offer(signature="sig", status=TradeStatus.SOLD)))
        assert b"status" not in raw
        assert b"signature" not in raw

    def test_total_price(self):
        assert _offer(amount=40, price=0.25).total_price == pytest.approx(10.0)

    @pytest.mark.parametrize("invite", ["", "%%%", base64.urlsafe_b64encode(b'{"id": "x"}').decode()])
    def test_malformed(self, invite):
        with pytest.raises(TradeInviteError):
            decode_invite(invite)

    def test_non_positive_amount_rejected(self):
        bad = base64.urlsafe_b64encode(
            b'{"id": "A", "amount": 0, "price": 1, "seller": "x", "timestamp": 1}'
        ).decode()
        with pytest.raises(TradeInviteError):
            decode_invite(bad)


class TestTradeBook:

    def test_record_and_get(self):
        book = TradeBook(MemoryStore())
        offer = _offer()
        book.record(offer)
        assert book.get(SELLER, offer.id) == offer
        assert book.get(SELLER, "missing") is None

    def test_open_to_sold(self):
        book = TradeBook(MemoryStore())
        offer = _offer()
        book.record(offer)
        assert book.transition(SELLER, offer.id, TradeStatus.SOLD).status == TradeStatus.SOLD
        assert book.get(SELLER, offer.id).status == TradeStatus.SOLD

    def test_open_to_cancelled(self):
        book = TradeBook(MemoryStore())
        offer = _offer()
        book.record(offer)
        book.transition(SELLER, offer.id, TradeStatus.CANCELLED)
        assert book.get(SELLER, offer.id).status == TradeStatus.CANCELLED

    @pytest.mark.parametrize("terminal", [TradeStatus.SOLD, TradeStatus.CANCELLED])
    @pytest.mark.parametrize("target", [TradeStatus.OPEN, TradeStatus.SOLD, TradeStatus.CANCELLED])
    def test_terminal_states_are_final(self, terminal, target):
        book = TradeBook(MemoryStore())
        offer = _offer()
        book.record(offer)
        book.transition(SELLER, offer.id, terminal)
        with pytest.raises(InvalidTradeTransition):
            book.transition(SELLER, offer.id, target)

    def test_open_to_open_rejected(self):
        book = TradeBook(MemoryStore())
        offer = _offer()
        book.record(offer)
        with pytest.raises(InvalidTradeTransition):
            book.transition(SELLER, offer.id, TradeStatus.OPEN)

    def test_unknown_offer(self):
        with pytest.raises(InvalidTradeTransition, match="Unknown"):
            TradeBook(MemoryStore()).transition(SELLER, "nope", TradeStatus.SOLD)


def test_simulated_gateway_confirms():
    assert SimulatedPaymentGateway().confirm_payment(_offer()) is True
