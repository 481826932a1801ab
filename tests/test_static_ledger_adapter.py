import os
import unittest

from freshscan.adapters.ledger.static_ledger_adapter import StaticLedgerAdapter
from freshscan.core.enums import DetectionMode
from freshscan.core.models import DetectionConfig, ScanFilter, ScanRequest, SourceGroup, sol_to_lamports
from freshscan.services.scan_service import ScanService

from ledger_builders import SOL, transfer_tx

FIXTURE = os.path.join(os.path.dirname(__file__), os.pardir, "fixtures", "sample_ledger.json")
BINANCE = "5tzFkiKscXHK5ZXCGbXZxdw7gTjjD1mBwuoFbhUvuAi9"


class StaticLedgerAdapterTests(unittest.TestCase):
    def test_outgoing_transfers_newest_first_inside_window(self) -> None:
        ledger = StaticLedgerAdapter(
            transactions=[
                transfer_tx("old", 100, "SRC", "D0", 2 * SOL),
                transfer_tx("t1", 5000, "SRC", "D1", 2 * SOL),
                transfer_tx("t2", 6000, "SRC", "D2", 3 * SOL),
                transfer_tx("in", 6500, "OTHER", "SRC", 3 * SOL),
                transfer_tx("failed", 7000, "SRC", "D3", 3 * SOL, failed=True),
            ],
            now_ts=7200,
        )

        transfers = ledger.list_outgoing_transfers("SRC", max_age_hours=1)

        self.assertEqual([t.destination for t in transfers], ["D2", "D1"])
        self.assertEqual(transfers[0].amount_lamports, 3 * SOL)
        self.assertEqual(ledger.calls, [("list_outgoing_transfers", "SRC")])

    def test_history_queries(self) -> None:
        ledger = StaticLedgerAdapter(
            transactions=[
                transfer_tx("c1", 100, "EXCH", "ACC", 2 * SOL),
                transfer_tx("d1", 200, "ACC", "NEXT", SOL, sender_pre=2 * SOL),
                transfer_tx("d2", 300, "ACC", "NEXT", SOL // 2, sender_pre=SOL),
            ],
            count_cap=2,
        )

        self.assertEqual([t.signature for t in ledger.first_transactions("ACC", 2)], ["c1", "d1"])
        self.assertEqual(ledger.total_transaction_count("ACC"), 2)
        self.assertEqual(ledger.total_transaction_count("NOBODY"), 0)
        self.assertEqual(ledger.first_transactions("ACC", 0), [])
        self.assertEqual(ledger.request_count, 4)

    def test_fixture_scan_end_to_end(self) -> None:
        ledger = StaticLedgerAdapter.from_json(FIXTURE)
        request = ScanRequest(
            groups=(SourceGroup("Binance", (BINANCE,)),),
            filter=ScanFilter.range(sol_to_lamports("1.5"), sol_to_lamports("2.5")),
            hours=96,
            mode=DetectionMode.RELAY_FOLLOWING,
        )

        report = ScanService(ledger, detection=DetectionConfig()).scan(request)

        self.assertEqual(report.stats.transfers_matched, 2)
        self.assertEqual(len(report.results), 1)
        result = report.results[0]
        self.assertEqual(result.final_account, "FreshB1111111111111111111111111111111111111")
        self.assertEqual(result.path, ("RelayA1111111111111111111111111111111111111", result.final_account))
        self.assertEqual(result.origin.signature, "tx-binance-to-relay")

    def test_fixture_scan_strict(self) -> None:
        ledger = StaticLedgerAdapter.from_json(FIXTURE)
        request = ScanRequest(
            groups=(SourceGroup("Binance", (BINANCE,)),),
            filter=ScanFilter.range(sol_to_lamports("1.5"), sol_to_lamports("2.5")),
            mode=DetectionMode.STRICT,
        )

        report = ScanService(ledger).scan(request)

        # both direct recipients have two transactions of their own
        self.assertEqual(report.results, [])
        self.assertEqual(report.stats.accounts_scanned, 2)


if __name__ == "__main__":
    unittest.main()
