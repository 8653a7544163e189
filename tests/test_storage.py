from flasharb.models import TradeResult
from flasharb.storage import TradeJournal

from helpers import TOKEN_A


def _result(trade_id, profit=15):
    return TradeResult(
        trade_id=trade_id,
        success=True,
        loan_amount=10**24,
        profit=profit,
        gas_used=300_000,
        timestamp=1_700_000_000.0,
        token_in=TOKEN_A,
        token_out=TOKEN_A,
        route_fingerprint="0xabc",
        phase="committed",
        step=2,
    )


def test_record_and_get_preserves_large_amounts():
    journal = TradeJournal()
    journal.record(_result(1))
    assert journal.get(1) == _result(1)
    assert journal.get(2) is None


def test_recent_is_newest_first():
    journal = TradeJournal()
    for i in range(1, 4):
        journal.record(_result(i))
    assert [r.trade_id for r in journal.recent(2)] == [3, 2]
    assert journal.last_trade_id() == 3


def test_empty_journal():
    assert TradeJournal().last_trade_id() == 0


def test_file_journal_persists(tmp_path):
    path = tmp_path / "db" / "trades.db"
    journal = TradeJournal(str(path))
    journal.record(_result(5))
    journal.close()

    reopened = TradeJournal(str(path))
    assert reopened.last_trade_id() == 5
    reopened.close()
