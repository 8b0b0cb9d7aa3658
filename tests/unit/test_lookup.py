"""Tests for the dnspython-backed lookup (the resolver is mocked)."""

from __future__ import annotations

from unittest.mock import patch

import dns.exception
import dns.resolver

from killswitch.allowlist.lookup import DnspythonLookup, ipv4_only


def test_configures_trusted_nameservers():
    lookup = DnspythonLookup(["8.8.4.4"], timeout=1.0, tries=3)
    assert lookup._resolver.nameservers == ["8.8.4.4"]
    assert lookup._resolver.lifetime == 1.0


def test_returns_ipv4_answers():
    lookup = DnspythonLookup(["8.8.4.4"])
    with patch.object(lookup._resolver, "resolve", return_value=["1.2.3.4", "5.6.7.8"]) as res:
        assert lookup.lookup("earth.airservers.org") == ["1.2.3.4", "5.6.7.8"]
    assert res.call_args.kwargs["tcp"] is True


def test_retries_timeouts_then_gives_up():
    lookup = DnspythonLookup(["8.8.4.4"], tries=3)
    with patch.object(lookup._resolver, "resolve", side_effect=dns.exception.Timeout) as res:
        assert lookup.lookup("earth.airservers.org") == []
    assert res.call_count == 3


def test_retry_succeeds():
    lookup = DnspythonLookup(["8.8.4.4"], tries=3)
    with patch.object(
        lookup._resolver, "resolve", side_effect=[dns.exception.Timeout, ["9.9.9.9"]]
    ):
        assert lookup.lookup("earth.airservers.org") == ["9.9.9.9"]


def test_nxdomain_is_not_retried():
    lookup = DnspythonLookup(["8.8.4.4"], tries=3)
    with patch.object(lookup._resolver, "resolve", side_effect=dns.resolver.NXDOMAIN) as res:
        assert lookup.lookup("nowhere.airservers.org") == []
    assert res.call_count == 1


def test_ipv4_only_filters_junk():
    assert ipv4_only(["1.2.3.4", "::1", "junk", " 5.6.7.8 "]) == ["1.2.3.4", "5.6.7.8"]


def test_lifetime_covers_every_nameserver():
    lookup = DnspythonLookup(["8.8.4.4", "8.8.8.8"], timeout=1.0)
    assert lookup._resolver.timeout == 1.0
    assert lookup._resolver.lifetime == 2.0


def test_dead_first_nameserver_falls_over_to_second():
    lookup = DnspythonLookup(["8.8.4.4", "8.8.8.8"], timeout=1.0, tries=3)
    order = []

    def resolve(hostname, rdtype, **kwargs):
        order.append(list(lookup._resolver.nameservers))
        if lookup._resolver.nameservers[0] == "8.8.4.4":
            raise dns.exception.Timeout
        return ["1.2.3.4"]

    with patch.object(lookup._resolver, "resolve", side_effect=resolve):
        assert lookup.lookup("earth.airservers.org") == ["1.2.3.4"]
    assert order == [["8.8.4.4", "8.8.8.8"], ["8.8.8.8", "8.8.4.4"]]


def test_no_nameservers_is_retried():
    lookup = DnspythonLookup(["8.8.4.4"], tries=3)
    with patch.object(
        lookup._resolver,
        "resolve",
        side_effect=[dns.resolver.NoNameservers, ["9.9.9.9"]],
    ) as res:
        assert lookup.lookup("earth.airservers.org") == ["9.9.9.9"]
    assert res.call_count == 2
