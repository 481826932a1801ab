import json
import os
import tempfile
import unittest

from freshscan.core.enums import DetectionMode
from freshscan.core.models import (
    ChainWalkResult,
    ScanFilter,
    ScanReport,
    ScanRequest,
    ScanStats,
    SourceGroup,
    TransferOrigin,
)
from freshscan.io.output_writer import write_results_json, write_summary_md


def _report() -> ScanReport:
    result = ChainWalkResult(
        is_fresh=True,
        final_account="FRESH",
        path=("RELAY", "FRESH"),
        reason="Fresh after 1 hop(s)",
        origin=TransferOrigin("Binance", "EXCH", 2_000_000_000, "sig-1", 1_700_000_000),
    )
    return ScanReport(results=[result], stats=ScanStats(duration_sec=1.23456, api_calls=12, detections=1))


class OutputWriterTests(unittest.TestCase):
    def test_results_json(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = write_results_json(_report(), os.path.join(tmp, "out"))
            with open(path, encoding="utf-8") as f:
                data = json.load(f)

        self.assertEqual(data["stats"]["duration_sec"], 1.235)
        self.assertEqual(data["stats"]["api_calls"], 12)
        row = data["results"][0]
        self.assertEqual(row["final_account"], "FRESH")
        self.assertEqual(row["path"], ["RELAY", "FRESH"])
        self.assertEqual(row["hops"], 1)
        self.assertEqual(row["amount_sol"], "2")
        self.assertEqual(row["source"], "Binance")

    def test_summary_md(self) -> None:
        request = ScanRequest(
            groups=(SourceGroup("Binance", ("EXCH",)),),
            filter=ScanFilter.range(1, 3_000_000_000),
            hours=48,
            mode=DetectionMode.RELAY_FOLLOWING,
        )
        with tempfile.TemporaryDirectory() as tmp:
            path = write_summary_md(_report(), tmp, request=request)
            with open(path, encoding="utf-8") as f:
                text = f.read()

        self.assertIn("# Fresh Account Scan", text)
        self.assertIn("- Mode: **relay-following**", text)
        self.assertIn("- **Binance**: 1", text)
        self.assertIn("2.000000 SOL", text)
        self.assertIn("path (1 hop)", text)

    def test_summary_md_without_results(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = write_summary_md(ScanReport(), tmp)
            with open(path, encoding="utf-8") as f:
                text = f.read()

        self.assertIn("No fresh accounts found", text)


if __name__ == "__main__":
    unittest.main()
