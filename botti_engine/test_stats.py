"""
Tests for the stats correlator and the ip/ping/idle formatting.

Run with:  python -m pytest botti_engine/test_stats.py -v
"""

import ipaddress
import logging

import pytest

from botti_engine.client import LoopbackChatClient, PacketStats, UserStats
from botti_engine.stats import (
    StatsCorrelator,
    format_address,
    format_idle,
    format_ping,
    loss_percentages,
)


# ============================================================
# Correlator
# ============================================================

@pytest.fixture
def client():
    return LoopbackChatClient()


@pytest.fixture
def correlator(client):
    return StatsCorrelator(client)


class TestStatsCorrelator:

    def test_request_asks_client_for_stats(self, client, correlator):
        bob = client.add_user("Bob")
        correlator.request(bob, lambda stats: None)
        assert client.stats_requests == [bob]
        assert correlator.pending

    def test_reply_goes_to_pending_callback_once(self, client, correlator):
        bob = client.add_user("Bob")
        received = []
        correlator.request(bob, received.append)

        stats = UserStats(session=bob.session, idlesecs=5)
        assert correlator.on_stats_arrived(stats) is True
        assert received == [stats]
        assert not correlator.pending

        # A second reply has no waiter and is dropped.
        assert correlator.on_stats_arrived(stats) is False
        assert received == [stats]

    def test_unrequested_reply_is_discarded(self, correlator):
        assert correlator.on_stats_arrived(UserStats(session=3)) is False

    def test_reply_for_other_user_still_consumes_slot(self, client, correlator):
        bob = client.add_user("Bob")
        received = []
        correlator.request(bob, received.append)
        correlator.on_stats_arrived(UserStats(session=999))
        assert [s.session for s in received] == [999]

    def test_overlapping_request_last_pending_wins(self, client, correlator, caplog):
        bob = client.add_user("Bob")
        carol = client.add_user("Carol")
        first, second = [], []

        correlator.request(bob, first.append)
        with caplog.at_level(logging.WARNING, logger="botti_engine.stats"):
            correlator.request(carol, second.append)

        correlator.on_stats_arrived(UserStats(session=bob.session))
        assert first == []
        assert [s.session for s in second] == [bob.session]
        assert any("replaces" in record.message for record in caplog.records)


# ============================================================
# Formatting
# ============================================================

def _mapped(ipv4: str) -> bytes:
    return ipaddress.IPv6Address(f"::ffff:{ipv4}").packed


class TestFormatAddress:

    def test_ipv4_mapped_collapses_to_ipv4(self):
        assert format_address(_mapped("192.168.1.5")) == "192.168.1.5"

    def test_plain_ipv6_is_compressed(self):
        raw = ipaddress.IPv6Address("2001:0db8:0000:0000:0000:0000:0000:0001").packed
        assert format_address(raw) == "2001:db8::1"

    def test_four_byte_address(self):
        assert format_address(bytes([10, 0, 0, 1])) == "10.0.0.1"

    def test_bad_length_raises(self):
        with pytest.raises(ValueError):
            format_address(b"\x01\x02")


class TestLossPercentages:

    def test_zero_packets_is_zero_percent(self):
        assert loss_percentages(PacketStats(0, 0, 0)) == (0.0, 0.0)

    def test_lost_and_late_share_of_total(self):
        lost, late = loss_percentages(PacketStats(good=90, late=5, lost=5))
        assert lost == pytest.approx(5.0)
        assert late == pytest.approx(5.0)


class TestFormatPing:

    def test_full_report(self):
        stats = UserStats(
            session=2,
            tcp_ping_avg=12.34,
            tcp_ping_var=4.0,
            udp_ping_avg=20.0,
            udp_ping_var=0.25,
            from_server=PacketStats(good=90, late=5, lost=5),
            from_client=PacketStats(good=200, late=0, lost=0),
        )
        assert format_ping(stats) == (
            "TCP: 12.3 ± 2.0 ms\n"
            "UDP: 20.0 ± 0.5 ms\n"
            "Loss->: 5.00 % / 5.00 %\n"
            "Loss<-: 0.00 % / 0.00 %"
        )

    def test_no_packets_either_way(self):
        report = format_ping(UserStats(session=2))
        assert "Loss->: 0.00 % / 0.00 %" in report
        assert "Loss<-: 0.00 % / 0.00 %" in report


class TestFormatIdle:

    @pytest.mark.parametrize("seconds, expected", [
        (0, "00:00:00"),
        (45, "00:00:45"),
        (3661, "01:01:01"),
        (86399, "23:59:59"),
        (86400, "More than a day"),
        (10 ** 7, "More than a day"),
    ])
    def test_format(self, seconds, expected):
        assert format_idle(seconds) == expected
