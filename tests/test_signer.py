import pytest
from eth_account import Account

from conftest import P1, P2

from channel import ChannelProposal, LocalAccountSigner

# Well-known development key, never funded
DEV_KEY = '0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318'


def test_signature_recovers_to_signer_address():
    signer = LocalAccountSigner(DEV_KEY)
    payload = ChannelProposal.build(P1, P2, 1_000_000, nonce=3).canonical_payload()

    signature = signer.sign(payload)
    assert signature.startswith('0x')
    assert signer.verify(payload, signature, signer.address)


def test_signature_over_different_terms_fails():
    signer = LocalAccountSigner()
    signature = signer.sign(ChannelProposal.build(P1, P2, 1_000_000, nonce=3).canonical_payload())
    altered = ChannelProposal.build(P1, P2, 2_000_000, nonce=3).canonical_payload()
    assert not signer.verify(altered, signature, signer.address)


def test_garbage_signature_does_not_verify():
    signer = LocalAccountSigner()
    assert not signer.verify(b'terms', '0x1234', signer.address)


def test_fresh_keys_are_distinct():
    assert LocalAccountSigner().address != LocalAccountSigner().address


def test_truncated_signature_does_not_verify():
    signer = LocalAccountSigner()
    assert not signer.verify(b'terms', '0x' + '11' * 10 + '1b', signer.address)


def test_out_of_range_recovery_byte_does_not_verify():
    signer = LocalAccountSigner()
    assert not signer.verify(b'terms', '0x' + '11' * 64 + '05', signer.address)


def test_unexpected_recovery_error_propagates(monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError('backend unavailable')

    monkeypatch.setattr(Account, 'recover_message', broken)
    signer = LocalAccountSigner(DEV_KEY)
    with pytest.raises(RuntimeError):
        signer.verify(b'terms', '0x' + '11' * 65, signer.address)
