# flasharb/flash_loan.py
"""
Balancer Vault style flash loans
Simulated lender for the execution core plus the on-chain transaction builder
"""

import logging
from typing import List, Tuple

from eth_abi import decode, encode
from web3 import Web3

from flasharb.config import BALANCER_VAULT, BPS_DENOMINATOR, CHAIN_ID, GAS_LIMIT, LENDER_FEE_BPS
from flasharb.errors import LoanUnavailable, MalformedRoute, RepaymentShortfall
from flasharb.ledger import Ledger

logger = logging.getLogger(__name__)

# =============================================================================
# BALANCER VAULT ABI (Flash Loan Related Functions)
# =============================================================================

VAULT_ABI = [
    {
        "name": "flashLoan",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "recipient", "type": "address"},
            {"name": "tokens", "type": "address[]"},
            {"name": "amounts", "type": "uint256[]"},
            {"name": "userData", "type": "bytes"},
        ],
        "outputs": [],
    },
    {
        "name": "getProtocolFeesCollector",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
]

LOAN_DATA_TYPES = ["uint256", "bytes32"]


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def calculate_total_repayment(amount: int, fee_bps: int) -> int:
    """Calculate total amount to repay (principal + fee)"""
    fee = (amount * fee_bps) // BPS_DENOMINATOR
    return amount + fee


def encode_loan_data(trade_id: int, fingerprint: str) -> bytes:
    """Opaque payload the lender hands back to the callback"""
    return encode(LOAN_DATA_TYPES, [trade_id, Web3.to_bytes(hexstr=fingerprint)])


def decode_loan_data(data: bytes) -> Tuple[int, str]:
    trade_id, fingerprint = decode(LOAN_DATA_TYPES, data)
    return trade_id, Web3.to_hex(fingerprint)


# =============================================================================
# SIMULATED LENDER
# =============================================================================

class VaultLender:
    """
    Lends from its own ledger balance and synchronously calls the receiver's
    on_loan_received() before returning. Aborts with RepaymentShortfall if
    principal + fee is not back by the time the callback returns.
    """

    def __init__(self, ledger: Ledger, address: str = BALANCER_VAULT, fee_bps: int = LENDER_FEE_BPS):
        self.ledger = ledger
        self.address = Web3.to_checksum_address(address)
        self.fee_bps = fee_bps

    def flash_fee(self, token: str, amount: int) -> int:
        return calculate_total_repayment(amount, self.fee_bps) - amount

    def available_liquidity(self, token: str) -> int:
        return self.ledger.balance_of(self.address, token)

    def request_loan(self, receiver, tokens: List[str], amounts: List[int], data: bytes) -> None:
        if len(tokens) != len(amounts) or not tokens:
            raise MalformedRoute("Loan tokens and amounts must be non-empty and aligned")

        tokens = [Web3.to_checksum_address(t) for t in tokens]
        for token, amount in zip(tokens, amounts):
            available = self.available_liquidity(token)
            if available < amount:
                raise LoanUnavailable(f"Vault holds {available} of {token}, requested {amount}")

        before = {t: self.ledger.balance_of(self.address, t) for t in set(tokens)}
        fees = [self.flash_fee(t, a) for t, a in zip(tokens, amounts)]

        for token, amount in zip(tokens, amounts):
            self.ledger.transfer(token, self.address, receiver.address, amount)

        logger.debug(f"Flash loan granted to {receiver.address}: {list(zip(tokens, amounts))}")
        receiver.on_loan_received(self.address, tokens, list(amounts), fees, data)

        owed = dict(before)
        for token, fee in zip(tokens, fees):
            owed[token] += fee
        for token, expected in owed.items():
            actual = self.ledger.balance_of(self.address, token)
            if actual < expected:
                raise RepaymentShortfall(
                    f"Vault expected {expected} of {token} back, holds {actual}"
                )


# =============================================================================
# ON-CHAIN TRANSACTION BUILDER
# =============================================================================

def build_flash_loan_tx(
    w3: Web3,
    receiver: str,
    tokens: List[str],
    amounts: List[int],
    user_data: bytes,
    from_address: str,
    gas_price: int,
    nonce: int,
    vault: str = BALANCER_VAULT,
) -> dict:
    """Build (not sign) a Vault.flashLoan transaction for a deployed receiver"""
    contract = w3.eth.contract(address=Web3.to_checksum_address(vault), abi=VAULT_ABI)
    return contract.functions.flashLoan(
        Web3.to_checksum_address(receiver),
        [Web3.to_checksum_address(t) for t in tokens],
        list(amounts),
        user_data,
    ).build_transaction({
        "from": Web3.to_checksum_address(from_address),
        "gas": GAS_LIMIT,
        "gasPrice": gas_price,
        "nonce": nonce,
        "chainId": CHAIN_ID,
    })
