import unittest

from freshscan.core.dto import RawTransaction
from freshscan.core.enums import TxDirection
from freshscan.services.transaction_classifier import TransactionClassifier

from ledger_builders import SOL, SYSTEM_PROGRAM, make_tx, transfer_tx


class TransactionClassifierTests(unittest.TestCase):
    def setUp(self) -> None:
        self.classifier = TransactionClassifier(dust_lamports=1000)

    def test_credit_and_debit_from_balance_delta(self) -> None:
        tx = transfer_tx("sig1", 100, "SENDER", "RECIPIENT", 2 * SOL)

        self.assertEqual(self.classifier.classify("RECIPIENT", tx), TxDirection.CREDIT)
        self.assertEqual(self.classifier.classify("SENDER", tx), TxDirection.DEBIT)

    def test_uninvolved_account_is_indeterminate(self) -> None:
        tx = transfer_tx("sig1", 100, "SENDER", "RECIPIENT", 2 * SOL)

        self.assertEqual(self.classifier.classify("SOMEONE_ELSE", tx), TxDirection.INDETERMINATE)

    def test_dust_threshold_is_exclusive(self) -> None:
        at_dust = make_tx("a", 1, [("ACC", 10_000, 11_000)])
        above = make_tx("b", 1, [("ACC", 10_000, 11_001)])
        small_debit = make_tx("c", 1, [("ACC", 10_000, 9_500)])
        debit = make_tx("d", 1, [("ACC", 10_000, 8_999)])

        self.assertEqual(self.classifier.classify("ACC", at_dust), TxDirection.INDETERMINATE)
        self.assertEqual(self.classifier.classify("ACC", above), TxDirection.CREDIT)
        self.assertEqual(self.classifier.classify("ACC", small_debit), TxDirection.INDETERMINATE)
        self.assertEqual(self.classifier.classify("ACC", debit), TxDirection.DEBIT)

    def test_misaligned_balances_are_indeterminate(self) -> None:
        tx = RawTransaction(
            signature="a",
            slot=1,
            block_time=1,
            account_keys=("OTHER", "ACC"),
            pre_balances=(0,),
            post_balances=(5 * SOL,),
        )

        self.assertEqual(self.classifier.classify("ACC", tx), TxDirection.INDETERMINATE)

    def test_debit_destination_skips_system_addresses(self) -> None:
        tx = make_tx(
            "sig",
            100,
            [
                ("RELAY", 2 * SOL, 100_000_000),
                (SYSTEM_PROGRAM, 1, 50_000),
                ("NEXT", 0, 1_899_000_000),
            ],
        )

        self.assertEqual(self.classifier.resolve_debit_destination("RELAY", tx), "NEXT")

    def test_debit_destination_none_without_recipient(self) -> None:
        tx = make_tx("sig", 100, [("RELAY", 2 * SOL, SOL), ("OTHER", 10, 10)])

        self.assertIsNone(self.classifier.resolve_debit_destination("RELAY", tx))
        self.assertIsNone(self.classifier.resolve_debit_destination("MISSING", tx))

    def test_sum_amounts(self) -> None:
        c1 = transfer_tx("c1", 100, "EXCH", "ACC", 2 * SOL)
        c2 = transfer_tx("c2", 110, "EXCH", "ACC", SOL, recipient_pre=2 * SOL)
        d1 = transfer_tx("d1", 120, "ACC", "NEXT", SOL, sender_pre=3 * SOL)

        totals = self.classifier.sum_amounts("ACC", [c1, c2], [d1])

        self.assertEqual(totals.total_credited, 3 * SOL)
        self.assertEqual(totals.total_debited, SOL + 5000)


if __name__ == "__main__":
    unittest.main()
