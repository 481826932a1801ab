import unittest

from freshscan.core.cancel import CancelToken
from freshscan.core.enums import DetectionMode
from freshscan.core.errors import ScanCancelledError
from freshscan.core.models import TransferOrigin
from freshscan.services.chain_walker import ChainWalker
from freshscan.services.pattern_analyzer import PatternAnalyzer
from freshscan.services.transaction_classifier import TransactionClassifier

from ledger_builders import SOL, ScriptedLedger, make_tx, transfer_tx

ORIGIN = TransferOrigin(
    source_label="Binance",
    source_account="EXCH",
    amount_lamports=2 * SOL,
    signature="sig-origin",
    timestamp=1000,
)


def _relay_history(account: str, nxt: str, t0: int = 100):
    """Receives 2 SOL from the exchange, forwards 1.9 SOL to `nxt`."""
    return [
        transfer_tx(f"{account}-in", t0, "EXCH", account, 2 * SOL),
        transfer_tx(f"{account}-out", t0 + 10, account, nxt, 1_900_000_000, sender_pre=2 * SOL),
    ]


class ChainWalkerTests(unittest.TestCase):
    def _walker(self, ledger: ScriptedLedger, max_hops: int = 3, sources=("EXCH",)) -> ChainWalker:
        classifier = TransactionClassifier(dust_lamports=1000)
        analyzer = PatternAnalyzer(ledger, classifier)
        return ChainWalker(
            ledger,
            analyzer,
            classifier,
            source_accounts=set(sources),
            max_hops=max_hops,
            max_window=10,
        )

    def test_virgin_account_is_fresh(self) -> None:
        ledger = ScriptedLedger()

        result = self._walker(ledger).walk("A", ORIGIN)

        self.assertTrue(result.is_fresh)
        self.assertEqual(result.final_account, "A")
        self.assertEqual(result.hops, 0)
        self.assertEqual(result.path, ("A",))

    def test_single_credit_passes_verification(self) -> None:
        ledger = ScriptedLedger({"A": [transfer_tx("c1", 100, "EXCH", "A", 2 * SOL)]})

        result = self._walker(ledger).walk("A", ORIGIN)

        self.assertTrue(result.is_fresh)
        self.assertEqual(result.final_account, "A")
        self.assertEqual(result.hops, 0)
        self.assertIn("exactly 1 transaction", result.reason)

    def test_relay_is_followed_to_virgin_account(self) -> None:
        ledger = ScriptedLedger({"A": _relay_history("A", "B")})

        result = self._walker(ledger).walk("A", ORIGIN)

        self.assertTrue(result.is_fresh)
        self.assertEqual(result.final_account, "B")
        self.assertEqual(result.path, ("A", "B"))
        self.assertEqual(result.hops, 1)
        self.assertEqual(result.origin, ORIGIN)

    def test_relay_back_into_source_is_not_fresh(self) -> None:
        ledger = ScriptedLedger({"A": _relay_history("A", "EXCH")})

        result = self._walker(ledger).walk("A", ORIGIN)

        self.assertFalse(result.is_fresh)
        self.assertIsNone(result.final_account)
        self.assertIn("source re-entry", result.reason)
        self.assertEqual(result.hops, 0)
        self.assertEqual(ledger.calls_for("first_transactions", "EXCH"), 0)

    def test_partial_forward_is_not_fresh(self) -> None:
        ledger = ScriptedLedger({
            "A": [
                transfer_tx("c1", 100, "EXCH", "A", 2 * SOL),
                transfer_tx("d1", 110, "A", "C", SOL // 2, sender_pre=2 * SOL),
            ],
        })

        result = self._walker(ledger).walk("A", ORIGIN)

        self.assertFalse(result.is_fresh)
        self.assertIn("Partial withdrawal", result.reason)
        self.assertEqual(ledger.calls_for("total_transaction_count"), 0)

    def test_cycle_is_not_fresh(self) -> None:
        ledger = ScriptedLedger({
            "A": _relay_history("A", "B"),
            "B": [
                transfer_tx("A-out", 110, "A", "B", 1_900_000_000, sender_pre=2 * SOL),
                transfer_tx("B-out", 120, "B", "A", 1_850_000_000, sender_pre=1_900_000_000),
            ],
        })

        result = self._walker(ledger).walk("A", ORIGIN)

        self.assertFalse(result.is_fresh)
        self.assertIn("cycle detected", result.reason)
        self.assertEqual(result.path, ("A", "B"))

    def test_path_never_repeats_an_account(self) -> None:
        ledger = ScriptedLedger({
            "A": _relay_history("A", "B"),
            "B": _relay_history("B", "C"),
            "C": _relay_history("C", "B"),
        })

        result = self._walker(ledger, max_hops=10).walk("A", ORIGIN)

        self.assertFalse(result.is_fresh)
        self.assertEqual(len(result.path), len(set(result.path)))

    def test_hop_budget_runs_one_final_verification(self) -> None:
        ledger = ScriptedLedger({
            "A": _relay_history("A", "B"),
            "B": _relay_history("B", "C"),
            "C": _relay_history("C", "D"),
            "D": _relay_history("D", "E"),
        })

        result = self._walker(ledger, max_hops=3).walk("A", ORIGIN)

        self.assertFalse(result.is_fresh)
        self.assertEqual(result.path, ("A", "B", "C", "D"))
        self.assertEqual(result.hops, 3)
        self.assertIn("Max hops (3) reached", result.reason)
        self.assertEqual(ledger.calls_for("total_transaction_count"), 1)
        self.assertEqual(ledger.calls_for("total_transaction_count", "D"), 1)
        self.assertEqual(ledger.calls_for("first_transactions", "D"), 0)

    def test_hop_budget_fresh_when_last_account_is_clean(self) -> None:
        ledger = ScriptedLedger({
            "A": _relay_history("A", "B"),
            "B": [transfer_tx("A-out", 110, "A", "B", 1_900_000_000, sender_pre=2 * SOL)],
        })

        result = self._walker(ledger, max_hops=1).walk("A", ORIGIN)

        self.assertTrue(result.is_fresh)
        self.assertEqual(result.final_account, "B")
        self.assertIn("Fresh at max hops", result.reason)

    def test_zero_hop_budget_only_verifies_start(self) -> None:
        ledger = ScriptedLedger()

        result = self._walker(ledger, max_hops=0).walk("A", ORIGIN)

        self.assertTrue(result.is_fresh)
        self.assertEqual(ledger.calls_for("first_transactions"), 0)
        self.assertEqual(ledger.calls_for("total_transaction_count", "A"), 1)

    def test_hops_never_exceed_budget(self) -> None:
        histories = {}
        chain = ["A", "B", "C", "D", "E", "F", "G"]
        for cur, nxt in zip(chain, chain[1:]):
            histories[cur] = _relay_history(cur, nxt)
        ledger = ScriptedLedger(histories)

        for budget in range(0, 5):
            result = self._walker(ledger, max_hops=budget).walk("A", ORIGIN)
            self.assertLessEqual(result.hops, budget)

    def test_strict_mode_uses_total_count_only(self) -> None:
        ledger = ScriptedLedger({"A": _relay_history("A", "B")})

        result = self._walker(ledger).walk("A", ORIGIN, mode=DetectionMode.STRICT)

        self.assertFalse(result.is_fresh)
        self.assertIn("2 total transactions", result.reason)
        self.assertEqual(result.path, ("A",))
        self.assertEqual(ledger.calls_for("first_transactions"), 0)

    def test_strict_mode_single_debit_is_not_fresh(self) -> None:
        ledger = ScriptedLedger({"A": [make_tx("d1", 100, [("A", 2 * SOL, SOL), ("X", 0, SOL - 5000)])]})

        result = self._walker(ledger).walk("A", ORIGIN, mode=DetectionMode.STRICT)

        self.assertFalse(result.is_fresh)
        self.assertIn("DEBIT", result.reason)

    def test_verify_terminal(self) -> None:
        ledger = ScriptedLedger({
            "ONE": [transfer_tx("c1", 100, "EXCH", "ONE", SOL)],
            "TWO": _relay_history("TWO", "X"),
        })
        walker = self._walker(ledger)

        self.assertTrue(walker.verify_terminal("NONE").is_final)
        self.assertTrue(walker.verify_terminal("ONE").is_final)
        self.assertFalse(walker.verify_terminal("TWO").is_final)
        self.assertEqual(walker.verify_terminal("TWO").tx_count, 2)

    def test_verify_terminal_honours_cancel(self) -> None:
        ledger = ScriptedLedger({"ONE": [transfer_tx("c1", 100, "EXCH", "ONE", SOL)]})
        cancel = CancelToken()
        cancel.cancel()

        with self.assertRaises(ScanCancelledError):
            self._walker(ledger).verify_terminal("ONE", cancel=cancel)
        self.assertEqual(ledger.calls, [])

    def test_strict_walk_honours_cancel(self) -> None:
        ledger = ScriptedLedger({"A": [transfer_tx("c1", 100, "EXCH", "A", 2 * SOL)]})
        cancel = CancelToken()
        cancel.cancel()

        with self.assertRaises(ScanCancelledError):
            self._walker(ledger).walk("A", ORIGIN, mode=DetectionMode.STRICT, cancel=cancel)
        self.assertEqual(ledger.calls, [])

    def test_window_must_be_positive(self) -> None:
        ledger = ScriptedLedger()
        classifier = TransactionClassifier(dust_lamports=1000)

        with self.assertRaises(ValueError):
            ChainWalker(ledger, PatternAnalyzer(ledger, classifier), classifier, source_accounts={"EXCH"}, max_window=0)


if __name__ == "__main__":
    unittest.main()
