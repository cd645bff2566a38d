from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from btc_price_feed.bitcoincharts.merge import merge_lines, merge_trades, select_winners
from btc_price_feed.bitcoincharts.persistence import load, persist
from btc_price_feed.bitcoincharts.series import PriceEntry, PriceSeries, format_price
from btc_price_feed.bitcoincharts.trades import Trade, decode_feed

I0 = 1609459200
STEP = 1800
# well past every interval used below
NOW = I0 + 100 * STEP


def _t(ts: int, price: str, volume: str = "0.1") -> Trade:
    return Trade(ts, Decimal(price), Decimal(volume))


def _as_rows(series: PriceSeries) -> list[tuple[int, str]]:
    return [(e.interval_start, format_price(e.price)) for e in series]


def test_select_winners_last_by_timestamp_then_input_order() -> None:
    winners = select_winners([_t(I0 + 10, "2"), _t(I0 + 5, "1"), _t(I0 + 10, "3"), _t(I0 + STEP, "9")])
    assert winners[I0].price == Decimal("3")
    assert winners[I0 + STEP].price == Decimal("9")


def test_end_to_end_empty_store() -> None:
    s = PriceSeries()
    res = merge_trades(s, [_t(1609459200, "29000.00", "0.1"), _t(1609459300, "29010.50", "0.2")], now=NOW)
    assert _as_rows(s) == [(1609459200, "29010.50")]
    assert res.appended == 1 and res.trades_seen == 2


def test_end_to_end_next_interval_on_loaded_store(tmp_path: Path) -> None:
    src = tmp_path / "store.csv"
    src.write_text("interval_start_timestamp,price\n1609459200,29010.50\n")
    s = load(src)
    merge_trades(s, [_t(1609461100, "29050.00", "0.05")], now=NOW)
    assert _as_rows(s) == [(1609459200, "29010.50"), (1609461000, "29050.00")]


def test_order_invariance_within_interval() -> None:
    early, late = _t(I0 + 1, "100"), _t(I0 + 2, "200")
    a, b = PriceSeries(), PriceSeries()
    merge_trades(a, [early, late], now=NOW)
    merge_trades(b, [late, early], now=NOW)
    assert a == b
    assert a.get(I0).price == Decimal("200")


def test_idempotent_merge() -> None:
    batch = [_t(I0 + 100, "1"), _t(I0 + 4 * STEP, "5"), _t(I0 + 50, "0.5"), _t(I0 + 2 * STEP + 3, "3")]
    once = PriceSeries()
    merge_trades(once, batch, now=NOW)
    twice = once.copy()
    res = merge_trades(twice, batch, now=NOW)
    assert twice == once
    assert res.changed == 0 and res.unchanged == 3


def test_gap_preserved() -> None:
    s = PriceSeries()
    merge_trades(s, [_t(I0 + 10, "1"), _t(I0 + 2 * STEP + 10, "3")], now=NOW)
    assert [e.interval_start for e in s] == [I0, I0 + 2 * STEP]
    assert (I0 + STEP) not in s


def test_gap_fill_from_later_batch() -> None:
    s = PriceSeries()
    merge_trades(s, [_t(I0 + 10, "1"), _t(I0 + 2 * STEP + 10, "3")], now=NOW)
    res = merge_trades(s, [_t(I0 + STEP + 10, "2")], now=NOW)
    assert res.inserted == 1
    assert [e.interval_start for e in s] == [I0, I0 + STEP, I0 + 2 * STEP]


def test_later_trade_in_new_batch_overwrites() -> None:
    s = PriceSeries()
    merge_trades(s, [_t(I0 + 10, "1")], now=NOW)
    res = merge_trades(s, [_t(I0 + 20, "2"), _t(I0 + 5, "0.5")], now=NOW)
    assert res.overwritten == 1
    assert s.get(I0) == PriceEntry(I0, Decimal("2.00"), I0 + 20)

    # an earlier trade or the same timestamp never replaces the stored one
    res = merge_trades(s, [_t(I0 + 20, "7"), _t(I0 + 15, "8")], now=NOW)
    assert res.unchanged == 1
    assert s.get(I0).price == Decimal("2")


def test_legacy_rows_without_trade_timestamp_are_kept() -> None:
    s = PriceSeries([PriceEntry(I0, Decimal("29010.50"))])
    res = merge_trades(s, [_t(I0 + 1799, "1")], now=NOW)
    assert res.unchanged == 1
    assert s.get(I0).price == Decimal("29010.50")


def test_open_interval_trades_are_discarded() -> None:
    now = I0 + STEP + 600  # inside interval I0 + STEP
    s = PriceSeries()
    res = merge_trades(
        s,
        [_t(I0 + 10, "1"), _t(I0 + STEP + 5, "2"), _t(I0 + STEP + 599, "3"), _t(I0 + 9 * STEP, "4")],
        now=now,
    )
    assert [e.interval_start for e in s] == [I0]
    assert res.open_discarded == 3

    # once the interval has elapsed its trades are recorded
    merge_trades(s, [_t(I0 + STEP + 5, "2"), _t(I0 + STEP + 1700, "3")], now=I0 + 2 * STEP)
    assert s.get(I0 + STEP).price == Decimal("3")


def test_merge_lines_collects_parse_errors() -> None:
    s = PriceSeries()
    lines = ["timestamp,price,volume", "1609459200,29000.00,0.1", "bad line", "1609459300,29010.50,0.2", ""]
    res = merge_lines(s, lines, now=NOW)
    assert len(res.parse_errors) == 1
    assert res.parse_errors[0].lineno == 3
    assert _as_rows(s) == [(1609459200, "29010.50")]


def test_overlapping_batches_across_runs(tmp_path: Path) -> None:
    store = tmp_path / "store.csv"
    first = ["1609459200,100,1", "1609459300,101,1", "1609461010,200,1"]
    # second pull overlaps the first and adds a later trade for I0 + STEP
    second = ["1609461010,200,1", "1609459300,101,1", "1609462000,201,1", "1609462810,300,1"]

    s = PriceSeries()
    merge_lines(s, first, now=NOW)
    persist(s, store)

    s = load(store)
    merge_lines(s, second, now=NOW)
    persist(s, store)
    snapshot = store.read_bytes()

    s = load(store)
    res = merge_lines(s, second, now=NOW)
    persist(s, store)
    assert res.changed == 0
    assert store.read_bytes() == snapshot
    assert _as_rows(s) == [(1609459200, "101.00"), (1609461000, "201.00"), (1609462800, "300.00")]


def test_unstorable_prices_are_skipped_and_store_reloads(tmp_path: Path) -> None:
    s = PriceSeries()
    lines = [
        "1609459200,29000.00,0.1",
        "1609459300,0.004,1",
        "1609461100,1000000000000000000000000000,1",
        "1609461200,29050.00,0.1",
    ]
    res = merge_lines(s, lines, now=NOW)
    assert [e.lineno for e in res.parse_errors] == [2, 3]
    assert _as_rows(s) == [(1609459200, "29000.00"), (1609461000, "29050.00")]

    store = persist(s, tmp_path / "store.csv")
    assert load(store) == s


def test_undecodable_feed_bytes_do_not_abort_merge() -> None:
    s = PriceSeries()
    res = merge_lines(s, decode_feed(b"1609459200,29000.00,0.1\n\xff\xfe,1,1\n1609461000,29050.00,0.1\n"), now=NOW)
    assert len(res.parse_errors) == 1
    assert _as_rows(s) == [(1609459200, "29000.00"), (1609461000, "29050.00")]
