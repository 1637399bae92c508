import datetime
import json
import logging
from typing import List, Dict, Any, Optional

from colorama import init, Fore, Style

from .metadata import get_category, resilience_status
from .models import ResultStatus, RiskLevel, SecurityTest, TestSuite, round_half_up, to_jsonable

init()

logger = logging.getLogger("resilience_auditor.reporting")

REPORT_TYPES = ("individual", "summary", "comparison")

STATUS_COLORS = {
    "passed": Fore.GREEN,
    "warning": Fore.YELLOW,
    "failed": Fore.RED,
}

RISK_COLORS = {
    "low": Fore.GREEN,
    "medium": Fore.YELLOW,
    "high": Fore.MAGENTA,
    "critical": Fore.RED,
}

# --- Report model ---

def chart_data(suite: TestSuite, tests: List[SecurityTest]) -> Dict[str, Any]:
    """Bar, radar and per-category series for one site."""
    bars = []
    by_category: Dict[str, List[int]] = {}
    for test in tests:
        if test.id not in suite.tests:
            continue
        score = suite.tests[test.id]
        label = get_category(test.category)["label"]
        bars.append({"test_id": test.id, "name": test.name, "score": score, "category": label})
        by_category.setdefault(label, []).append(score)

    return {
        "bar": bars,
        "radar": [{"test": b["name"].split(" ")[0], "score": b["score"]} for b in bars],
        "category": [
            {"name": name, "value": round_half_up(sum(scores) / len(scores))}
            for name, scores in by_category.items()
        ],
    }

def build_site_report(store, site_id: str) -> Dict[str, Any]:
    site = store.get_site(site_id)
    suite = store.get_test_suite(site_id)
    results = store.get_test_results(site_id)
    names = {t.id: t.name for t in store.tests}

    counts = {s.value: 0 for s in ResultStatus}
    for r in results:
        counts[r.status.value] += 1

    result_rows = []
    for r in results:
        row = to_jsonable(r)
        row["test_name"] = names.get(r.test_id, r.test_id)
        result_rows.append(row)

    return {
        "site": site.to_dict(),
        "suite": suite.to_dict(),
        "status": resilience_status(suite.overall_score),
        "results": result_rows,
        "counts": counts,
        "charts": chart_data(suite, store.tests),
    }

def generate_report_summary(site_reports: List[Dict[str, Any]]) -> Dict[str, Any]:
    total = len(site_reports)
    scores = [r["suite"]["overall_score"] for r in site_reports]
    risks = [r["suite"]["risk_level"] for r in site_reports]
    summary = {
        "total_sites": total,
        "average_score": round_half_up(sum(scores) / total) if total else 0,
        "critical_sites": risks.count(RiskLevel.CRITICAL.value),
        "high_risk_sites": risks.count(RiskLevel.HIGH.value),
        "passed": 0,
        "warning": 0,
        "failed": 0,
    }
    for r in site_reports:
        for status, n in r["counts"].items():
            summary[status] = summary.get(status, 0) + n
    return summary

def build_comparison(store, site_ids: List[str]) -> Dict[str, Any]:
    rows = []
    for test in store.tests:
        rows.append({
            "test_id": test.id,
            "name": test.name,
            "scores": {sid: store.get_test_suite(sid).tests.get(test.id) for sid in site_ids},
        })
    return {"sites": list(site_ids), "rows": rows}

def build_report(store, site_ids: Optional[List[str]] = None,
                 report_type: str = "individual") -> Dict[str, Any]:
    """
    Assembles the report dict every exporter renders from.
    Unknown sites raise KeyError, unknown report types raise ValueError.
    """
    if report_type not in REPORT_TYPES:
        raise ValueError(f"Unknown report type: {report_type}")
    if not site_ids:
        site_ids = [s.id for s in store.state.sites]

    site_reports = [build_site_report(store, sid) for sid in site_ids]
    report = {
        "title": "MCX Security Resilience Report",
        "report_type": report_type,
        "generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "summary": generate_report_summary(site_reports),
        "sites": site_reports,
    }
    if report_type == "comparison":
        report["comparison"] = build_comparison(store, site_ids)
    return report

# --- Console ---

class ConsoleReporter:
    def print_summary(self, report: Dict[str, Any]):
        print(f"\n{Style.BRIGHT}=== {report['title'].upper()} ==={Style.RESET_ALL}\n")

        for site_report in report["sites"]:
            site = site_report["site"]
            suite = site_report["suite"]
            risk = suite["risk_level"]
            r_col = RISK_COLORS.get(risk, "")
            print(f"{Style.BRIGHT}{site['name']}{Style.RESET_ALL} ({site['id']}) "
                  f"score {suite['overall_score']}/100 [{r_col}{risk.upper()}{Style.RESET_ALL}]")

            if report["report_type"] == "summary":
                continue
            for r in site_report["results"]:
                s_col = STATUS_COLORS.get(r["status"], "")
                print(f"  [{s_col}{r['status'].upper():7}{Style.RESET_ALL}] {r['test_name']}: {r['score']}")
                if r["status"] == "failed":
                    for rec in r["recommendations"][:2]:
                        print(f"      {Fore.YELLOW}- {rec}{Style.RESET_ALL}")

        s = report["summary"]
        print(f"\n{Style.BRIGHT}Average Resilience Score: {s['average_score']}/100{Style.RESET_ALL}")
        print(f"Sites: {s['total_sites']}  Critical: {s['critical_sites']}  High risk: {s['high_risk_sites']}")
        print(f"Tests passed/warning/failed: {s['passed']}/{s['warning']}/{s['failed']}")

# --- JSON / text ---

def render_json(report: Dict[str, Any]) -> str:
    return json.dumps(report, indent=2)

def generate_json_report(report: Dict[str, Any], output_path: str):
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(render_json(report))
    print(f"\nJSON Report written to: {output_path}")

def render_text(report: Dict[str, Any]) -> str:
    """Plain-text summary suitable for sharing."""
    s = report["summary"]
    lines = [
        report["title"],
        f"Generated: {report['generated_at']}",
        "",
        f"Sites assessed: {s['total_sites']}",
        f"Average score: {s['average_score']}/100",
        f"Critical risk: {s['critical_sites']}",
        f"High risk: {s['high_risk_sites']}",
        "",
    ]
    for site_report in report["sites"]:
        site = site_report["site"]
        suite = site_report["suite"]
        lines.append(f"- {site['name']}: {suite['overall_score']}/100 ({suite['risk_level']} risk)")
        failed = [r["test_name"] for r in site_report["results"] if r["status"] == "failed"]
        if failed:
            lines.append(f"  Failed: {', '.join(failed)}")
    return "\n".join(lines) + "\n"
