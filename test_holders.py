"""Holder registry tests."""

import pytest

import config
from conftest import MINT, OTHER_MINT, FakeProvider, addr, token_account
from errors import ProviderError
from holders import parse_program_accounts, snapshot, top_holder_addresses


def test_accounts_of_same_owner_are_merged():
    raw = {"result": [
        token_account(addr("A"), MINT, 10, 10.0, pubkey=addr("P", 1)),
        token_account(addr("A"), MINT, 5, 5.0, pubkey=addr("P", 2)),
    ]}
    holders = parse_program_accounts(raw, MINT)
    assert len(holders) == 1
    assert holders[0].address == addr("A")
    assert holders[0].balance == 15
    assert holders[0].ui_balance == 15.0


def test_other_mints_and_dust_are_dropped():
    raw = {"result": [
        token_account(addr("A"), MINT, 10, 10.0),
        token_account(addr("B"), OTHER_MINT, 99, 99.0),
        token_account(addr("C"), MINT, 1, 0.0001),
        {"pubkey": "x", "account": {"data": ["AAAA", "base64"]}},
    ]}
    holders = parse_program_accounts(raw, MINT)
    assert [h.address for h in holders] == [addr("A")]


def test_dust_is_judged_after_aggregation():
    raw = {"result": [
        token_account(addr("A"), MINT, 6, 0.0006, pubkey=addr("P", 1)),
        token_account(addr("A"), MINT, 6, 0.0006, pubkey=addr("P", 2)),
    ]}
    holders = parse_program_accounts(raw, MINT)
    assert len(holders) == 1
    assert holders[0].ui_balance >= config.MIN_HOLDER_BALANCE


def test_snapshot_sorted_by_balance_desc():
    provider = FakeProvider(accounts=[
        token_account(addr("A"), MINT, 100, 100.0),
        token_account(addr("B"), MINT, 900, 900.0),
        token_account(addr("C"), MINT, 500, 500.0),
    ])
    holders = snapshot(MINT, provider)
    assert [h.address for h in holders] == [addr("B"), addr("C"), addr("A")]
    assert provider.program_calls == [config.TOKEN_PROGRAM_ID]


def test_snapshot_falls_back_to_token_2022():
    provider = FakeProvider(token2022_accounts=[token_account(addr("A"), MINT, 42, 42.0)])
    holders = snapshot(MINT, provider)
    assert provider.program_calls == [config.TOKEN_PROGRAM_ID, config.TOKEN_2022_PROGRAM_ID]
    assert holders[0].balance == 42


def test_snapshot_provider_failure_raises():
    provider = FakeProvider()
    provider.fail_holders = True
    with pytest.raises(ProviderError):
        snapshot(MINT, provider)
    # no internal retry
    assert provider.program_calls == [config.TOKEN_PROGRAM_ID]


def test_top_holder_addresses():
    provider = FakeProvider(accounts=[
        token_account(addr("A", i), MINT, 1000 - i, float(1000 - i)) for i in range(30)
    ])
    holders = snapshot(MINT, provider)
    top = top_holder_addresses(holders)
    assert len(top) == config.TOP_HOLDER_COUNT
    assert addr("A", 0) in top
    assert addr("A", 29) not in top
    assert top_holder_addresses(holders, n=2) == {addr("A", 0), addr("A", 1)}
