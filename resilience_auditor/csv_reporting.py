import csv
import io
from typing import Dict, Any

CSV_COLUMNS = [
    "site_id", "site_name", "infrastructure", "overall_score", "risk_level",
    "test_id", "test_name", "score", "status", "timestamp",
]

def render_csv(report: Dict[str, Any]) -> str:
    """One row per (site, test)."""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for site_report in report["sites"]:
        site = site_report["site"]
        suite = site_report["suite"]
        for r in site_report["results"]:
            writer.writerow({
                "site_id": site["id"],
                "site_name": site["name"],
                "infrastructure": site["infrastructure"]["type"],
                "overall_score": suite["overall_score"],
                "risk_level": suite["risk_level"],
                "test_id": r["test_id"],
                "test_name": r["test_name"],
                "score": r["score"],
                "status": r["status"],
                "timestamp": r["timestamp"],
            })
    return buf.getvalue()

class CsvReporter:
    def __init__(self, filename="report.csv"):
        self.filename = filename

    def generate(self, report: Dict[str, Any]) -> str:
        with open(self.filename, "w", encoding="utf-8", newline="") as f:
            f.write(render_csv(report))
        print(f"CSV Report written to: {self.filename}")
        return self.filename
