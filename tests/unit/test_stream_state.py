"""
Unit Tests for the Kraken Futures live stream reducer

Run with:
    pytest tests/unit/test_stream_state.py -v
"""

import pytest

from core.schemas import ConnectionStatus, StreamBalances, StreamPosition
from core.stream_state import merge_numbers, merge_positions, set_mark_price, upsert_position
from exchanges.kraken.stream_state import (
    Effect,
    StreamSession,
    apply_message,
    derive_total_balance,
    merge_balances,
)

NOW = 1700000000000


def subscribed_session():
    session, _ = apply_message(StreamSession(), {"event": "challenge", "message": "c-1"}, NOW)
    session, _ = apply_message(session, {"event": "subscribed", "feed": "open_positions"}, NOW)
    session, _ = apply_message(session, {"event": "subscribed", "feed": "balances"}, NOW)
    return session


# ============================================
# Handshake
# ============================================

class TestHandshake:
    """Tests for challenge and subscription acknowledgements"""

    def test_challenge_requests_subscribe(self):
        session, effects = apply_message(StreamSession(), {"event": "challenge", "message": "c-1"}, NOW)

        assert session.state.status == ConnectionStatus.CHALLENGED
        assert session.challenge == "c-1"
        assert effects == [Effect.SUBSCRIBE]

    def test_subscribed_after_all_feeds(self):
        session, _ = apply_message(StreamSession(), {"event": "challenge", "message": "c-1"}, NOW)

        session, effects = apply_message(session, {"event": "subscribed", "feed": "open_positions"}, NOW)
        assert session.state.status == ConnectionStatus.CHALLENGED
        assert effects == []

        session, effects = apply_message(session, {"event": "subscribed", "feed": "balances"}, NOW)
        assert session.state.status == ConnectionStatus.SUBSCRIBED
        assert effects == [Effect.START_KEEPALIVE]

    def test_duplicate_ack_does_not_restart_keepalive(self):
        session, effects = apply_message(subscribed_session(), {"event": "subscribed", "feed": "balances"}, NOW)
        assert effects == []
        assert session.state.status == ConnectionStatus.SUBSCRIBED

    @pytest.mark.parametrize("message", [
        {"event": "error", "message": "Invalid challenge"},
        {"error": "Unauthorized"},
    ])
    def test_error_message(self, message):
        session, effects = apply_message(subscribed_session(), message, NOW)

        assert session.state.status == ConnectionStatus.ERROR
        assert session.state.error in ("Invalid challenge", "Unauthorized")
        assert effects == []

    def test_unknown_message_is_ignored(self):
        session = subscribed_session()
        assert apply_message(session, {"event": "info", "version": 1}, NOW) == (session, [])
        assert apply_message(session, "heartbeat", NOW) == (session, [])


# ============================================
# Positions Feed
# ============================================

class TestOpenPositionsFeed:
    """Tests for field-by-field position merging"""

    def test_positions_loaded(self):
        message = {"feed": "open_positions", "positions": [
            {"instrument": "PF_XBTUSD", "balance": 0.5, "entry_price": 43000, "pnl": 12.5},
            {"instrument": "PF_ETHUSD", "balance": 0.0},
        ]}
        session, _ = apply_message(subscribed_session(), message, NOW + 1)

        assert [p.instrument for p in session.state.positions] == ["PF_XBTUSD"]
        assert session.state.positions[0].entry_price == 43000.0
        assert session.state.last_update_ts == NOW + 1

    def test_absent_fields_keep_previous_values(self):
        first = {"feed": "open_positions", "positions": [
            {"instrument": "PF_XBTUSD", "balance": 0.5, "entry_price": 43000, "mark_price": 43500},
        ]}
        update = {"feed": "open_positions", "positions": [
            {"instrument": "PF_XBTUSD", "mark_price": 44000, "pnl": "not-a-number"},
        ]}
        session, _ = apply_message(subscribed_session(), first, NOW)
        session, _ = apply_message(session, update, NOW + 5)

        position = session.state.positions[0]
        assert position.balance == 0.5
        assert position.entry_price == 43000.0
        assert position.mark_price == 44000.0
        assert position.pnl is None

    def test_closed_instrument_dropped(self):
        first = {"feed": "open_positions", "positions": [
            {"instrument": "PF_XBTUSD", "balance": 0.5},
            {"instrument": "PF_ETHUSD", "balance": -2},
        ]}
        session, _ = apply_message(subscribed_session(), first, NOW)
        session, _ = apply_message(session, {"feed": "open_positions", "positions": [
            {"instrument": "PF_ETHUSD", "balance": -1},
        ]}, NOW)

        assert [(p.instrument, p.balance) for p in session.state.positions] == [("PF_ETHUSD", -1.0)]

    def test_message_without_positions_preserves_state(self):
        session, _ = apply_message(subscribed_session(), {"feed": "open_positions", "positions": [
            {"instrument": "PF_XBTUSD", "balance": 0.5},
        ]}, NOW)
        after, _ = apply_message(session, {"feed": "open_positions"}, NOW + 1)

        assert after.state.positions == session.state.positions


# ============================================
# Balances Feed
# ============================================

class TestBalancesFeed:
    """Tests for balances merging and the derived total"""

    def test_merge_with_empty_message_is_identity(self):
        previous = merge_balances(StreamBalances(), {"currency": "USD", "portfolio_value": 1020.5, "available": 900})
        assert merge_balances(previous, {}) == previous

    def test_unparseable_field_preserved(self):
        previous = merge_balances(StreamBalances(), {"available": 900, "pnl": 5})
        merged = merge_balances(previous, {"available": "oops", "pnl": -3})

        assert merged.available == 900.0
        assert merged.pnl == -3.0

    @pytest.mark.parametrize("fields,expected", [
        ({"portfolio_value": 10.0, "margin_equity": 20.0, "collateral_value": 30.0, "balance": 40.0}, 10.0),
        ({"margin_equity": 20.0, "collateral_value": 30.0, "balance": 40.0}, 20.0),
        ({"collateral_value": 30.0, "balance": 40.0}, 30.0),
        ({"balance": 40.0}, 40.0),
        ({}, None),
    ])
    def test_total_balance_chain(self, fields, expected):
        assert derive_total_balance(StreamBalances(**fields)) == expected

    def test_balances_feed_reads_data_member(self):
        message = {"feed": "balances", "data": {"currency": "USD", "balance": 500, "margin_equity": 750}}
        session, _ = apply_message(subscribed_session(), message, NOW + 2)

        balances = session.state.balances
        assert balances.currency == "USD"
        assert balances.total_balance == 750.0
        assert session.state.last_update_ts == NOW + 2

    def test_snapshot_feed_reads_top_level(self):
        message = {"feed": "balances_snapshot", "portfolio_value": 1000, "available": 800}
        session, _ = apply_message(subscribed_session(), message, NOW)

        assert session.state.balances.total_balance == 1000.0
        assert session.state.balances.available == 800.0

    def test_total_rederived_on_later_message(self):
        session, _ = apply_message(subscribed_session(), {"feed": "balances", "data": {"balance": 500}}, NOW)
        assert session.state.balances.total_balance == 500.0

        session, _ = apply_message(session, {"feed": "balances", "data": {"portfolio_value": 650}}, NOW)
        assert session.state.balances.total_balance == 650.0
        assert session.state.balances.balance == 500.0

    def test_reducer_does_not_mutate_input(self):
        session = subscribed_session()
        before = session.model_copy(deep=True)
        apply_message(session, {"feed": "balances", "data": {"balance": 1}}, NOW)
        assert session == before


# ============================================
# Shared Merge Helpers
# ============================================

class TestMergeHelpers:
    """Tests for the helpers every exchange reducer builds on"""

    def test_merge_numbers_skips_absent_and_unparseable(self):
        merged = merge_numbers({"pnl": 1.0, "balance": 2.0}, {"pnl": "oops", "balance": "3"}, ["pnl", "balance", "mark_price"])
        assert merged == {"pnl": 1.0, "balance": 3.0}

    def test_merge_positions_drops_missing_and_dust(self):
        previous = [StreamPosition(instrument="A", balance=1.0, pnl=5.0), StreamPosition(instrument="B", balance=2.0)]
        merged = merge_positions(previous, [{"instrument": "A", "balance": "1.5"}, {"instrument": "C", "balance": 0}])

        assert [p.instrument for p in merged] == ["A"]
        assert merged[0].balance == 1.5
        assert merged[0].pnl == 5.0

    def test_merge_positions_skips_malformed_entries(self):
        merged = merge_positions([], [None, {"balance": 1}, {"instrument": "", "balance": 1}, {"instrument": "A", "balance": 1}])
        assert [p.instrument for p in merged] == ["A"]

    def test_upsert_by_position_id_keeps_hedged_sides(self):
        previous = [
            StreamPosition(instrument="ETH_USDT", position_id="1", balance=0.3),
            StreamPosition(instrument="ETH_USDT", position_id="2", balance=-0.1),
        ]
        updated = upsert_position(previous, {"instrument": "ETH_USDT", "position_id": "2", "balance": -0.4})

        assert [(p.position_id, p.balance) for p in updated] == [("1", 0.3), ("2", -0.4)]
        assert previous[1].balance == -0.1

    def test_upsert_without_id_matches_instrument(self):
        previous = [StreamPosition(instrument="A", balance=1.0, entry_price=10.0)]
        updated = upsert_position(previous, {"instrument": "A", "balance": 2})
        assert updated == [StreamPosition(instrument="A", balance=2.0, entry_price=10.0)]

    def test_upsert_new_and_closing(self):
        previous = [StreamPosition(instrument="A", balance=1.0)]

        added = upsert_position(previous, {"instrument": "B", "balance": 3})
        assert [p.instrument for p in added] == ["A", "B"]

        assert upsert_position(added, {"instrument": "A", "balance": 0}) == [StreamPosition(instrument="B", balance=3.0)]
        assert upsert_position(previous, {"instrument": "C", "balance": 0}) == previous

    def test_set_mark_price_only_touches_instrument(self):
        previous = [StreamPosition(instrument="A", balance=1.0), StreamPosition(instrument="B", balance=1.0)]
        updated = set_mark_price(previous, "B", 99.5)
        assert [p.mark_price for p in updated] == [None, 99.5]
