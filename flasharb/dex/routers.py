# flasharb/dex/routers.py
"""
Uniswap V3 SwapRouter / QuoterV2 adapters for live networks
"""

from web3 import Web3

from flasharb.chain import Web3Clock
from flasharb.config import CHAIN_ID, FEE_TIER_DENOMINATOR, UNISWAP_V3_QUOTER, UNISWAP_V3_ROUTER
from flasharb.errors import VenueUnavailable
from flasharb.quote_engine import Quote, QuoteOracle

SWAP_ROUTER_ABI = [
    {
        "name": "exactInputSingle",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [
            {
                "name": "params",
                "type": "tuple",
                "components": [
                    {"name": "tokenIn", "type": "address"},
                    {"name": "tokenOut", "type": "address"},
                    {"name": "fee", "type": "uint24"},
                    {"name": "recipient", "type": "address"},
                    {"name": "deadline", "type": "uint256"},
                    {"name": "amountIn", "type": "uint256"},
                    {"name": "amountOutMinimum", "type": "uint256"},
                    {"name": "sqrtPriceLimitX96", "type": "uint160"},
                ],
            }
        ],
        "outputs": [{"name": "amountOut", "type": "uint256"}],
    },
]

QUOTER_V2_ABI = [
    {
        "name": "quoteExactInputSingle",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {
                "name": "params",
                "type": "tuple",
                "components": [
                    {"name": "tokenIn", "type": "address"},
                    {"name": "tokenOut", "type": "address"},
                    {"name": "amountIn", "type": "uint256"},
                    {"name": "fee", "type": "uint24"},
                    {"name": "sqrtPriceLimitX96", "type": "uint160"},
                ],
            }
        ],
        "outputs": [
            {"name": "amountOut", "type": "uint256"},
            {"name": "sqrtPriceX96After", "type": "uint160"},
            {"name": "initializedTicksCrossed", "type": "uint32"},
            {"name": "gasEstimate", "type": "uint256"},
        ],
    },
]


class UniswapV3Quoter(QuoteOracle):
    """
    Quote oracle backed by QuoterV2

    quoteExactInputSingle is not a view function; it is always invoked with
    eth_call so nothing is committed.
    """

    def __init__(self, w3: Web3, quoter: str = UNISWAP_V3_QUOTER, clock=None):
        self.w3 = w3
        self.clock = clock if clock is not None else Web3Clock(w3)
        self.quoter = w3.eth.contract(address=Web3.to_checksum_address(quoter), abi=QUOTER_V2_ABI)

    def quote(
        self,
        venue: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee_tier: int,
    ) -> Quote:
        params = (
            Web3.to_checksum_address(token_in),
            Web3.to_checksum_address(token_out),
            amount_in,
            fee_tier,
            0,
        )
        try:
            amount_out, _, _, _ = self.quoter.functions.quoteExactInputSingle(params).call()
        except Exception as e:
            raise VenueUnavailable(f"Quoter call failed: {e}") from e

        return Quote(
            venue=Web3.to_checksum_address(venue),
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            fee_amount=amount_in * fee_tier // FEE_TIER_DENOMINATOR,
            fee_tier=fee_tier,
            timestamp=self.clock.now(),
        )


def build_exact_input_single_tx(
    w3: Web3,
    token_in: str,
    token_out: str,
    fee_tier: int,
    recipient: str,
    deadline: int,
    amount_in: int,
    min_amount_out: int,
    from_address: str,
    gas: int,
    gas_price: int,
    nonce: int,
    router: str = UNISWAP_V3_ROUTER,
) -> dict:
    """Build (not sign) an exactInputSingle swap"""
    contract = w3.eth.contract(address=Web3.to_checksum_address(router), abi=SWAP_ROUTER_ABI)
    params = (
        Web3.to_checksum_address(token_in),
        Web3.to_checksum_address(token_out),
        fee_tier,
        Web3.to_checksum_address(recipient),
        int(deadline),
        amount_in,
        min_amount_out,
        0,
    )
    return contract.functions.exactInputSingle(params).build_transaction({
        "from": Web3.to_checksum_address(from_address),
        "gas": gas,
        "gasPrice": gas_price,
        "nonce": nonce,
        "chainId": CHAIN_ID,
    })
