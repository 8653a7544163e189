from unittest.mock import MagicMock

import pytest

from flasharb.errors import LoanUnavailable, RepaymentShortfall
from flasharb.flash_loan import (
    VaultLender,
    build_flash_loan_tx,
    calculate_total_repayment,
    decode_loan_data,
    encode_loan_data,
)

from helpers import ENGINE, LENDER, LENDER_LIQUIDITY, OWNER, TOKEN_A, TOKEN_B


class Borrower:
    """Receiver that repays `repay_extra` on top of the principal"""

    def __init__(self, ledger, repay_extra=0):
        self.address = ENGINE
        self.ledger = ledger
        self.repay_extra = repay_extra
        self.calls = []

    def on_loan_received(self, sender, tokens, amounts, fees, data):
        self.calls.append((sender, tokens, amounts, fees, data))
        for token, amount in zip(tokens, amounts):
            self.ledger.transfer(token, self.address, sender, amount + self.repay_extra)


def test_total_repayment():
    assert calculate_total_repayment(1_000_000, 9) == 1_000_900
    assert calculate_total_repayment(1000, 0) == 1000


def test_flash_fee_matches_repayment(ledger):
    lender = VaultLender(ledger, address=LENDER, fee_bps=9)
    assert lender.flash_fee(TOKEN_A, 1_000_000) == 900


def test_loan_data_carries_trade_and_fingerprint():
    fingerprint = "0x" + "ab" * 32
    assert decode_loan_data(encode_loan_data(42, fingerprint)) == (42, fingerprint)


def test_loan_round_trip(market):
    borrower = Borrower(market.ledger)
    market.lender.request_loan(borrower, [TOKEN_A], [1000], b"payload")

    sender, tokens, amounts, fees, data = borrower.calls[0]
    assert sender == LENDER
    assert (tokens, amounts, fees, data) == ([TOKEN_A], [1000], [0], b"payload")
    assert market.ledger.balance_of(LENDER, TOKEN_A) == LENDER_LIQUIDITY


def test_fee_must_be_repaid(ledger):
    lender = VaultLender(ledger, address=LENDER, fee_bps=9)
    ledger.mint(LENDER, TOKEN_A, 10**9)
    ledger.mint(ENGINE, TOKEN_A, 10**6)

    with pytest.raises(RepaymentShortfall):
        lender.request_loan(Borrower(ledger), [TOKEN_A], [1_000_000], b"")

    lender.request_loan(Borrower(ledger, repay_extra=900), [TOKEN_A], [1_000_000], b"")
    assert ledger.balance_of(LENDER, TOKEN_A) == 10**9 + 900


def test_insufficient_liquidity(market):
    with pytest.raises(LoanUnavailable):
        market.lender.request_loan(Borrower(market.ledger), [TOKEN_B], [1], b"")


def test_build_flash_loan_tx():
    w3 = MagicMock()
    fn = w3.eth.contract.return_value.functions.flashLoan
    fn.return_value.build_transaction.return_value = {"to": LENDER}

    tx = build_flash_loan_tx(w3, ENGINE, [TOKEN_A], [1000], b"\x01", OWNER,
                             gas_price=30 * 10**9, nonce=7, vault=LENDER)

    assert tx == {"to": LENDER}
    fn.assert_called_once_with(ENGINE, [TOKEN_A], [1000], b"\x01")
    params = fn.return_value.build_transaction.call_args[0][0]
    assert params["from"] == OWNER
    assert params["nonce"] == 7
    assert params["gasPrice"] == 30 * 10**9
