import datetime
from html import escape
from typing import Dict, Any

from .metadata import RISK_COLORS, score_color

def _bar(score: int) -> str:
    return f"""
            <div class="bar"><div style="width: {score}%; background: {score_color(score)};"></div></div>"""

def _site_section(site_report: Dict[str, Any], detailed: bool) -> str:
    site = site_report["site"]
    suite = site_report["suite"]
    risk = suite["risk_level"]
    counts = site_report["counts"]

    html = f"""
    <div class="site">
        <div class="site-head">
            <span class="badge" style="background: {RISK_COLORS.get(risk, '#6b7280')};">{risk.upper()}</span>
            <strong>{escape(site['name'])}</strong>
            <span class="muted" style="margin-left: auto;">{escape(site['id'])} // {escape(site['infrastructure']['type'])}</span>
        </div>
        <div class="site-body">
            <div class="score" style="color: {score_color(suite['overall_score'])};">{suite['overall_score']}<small>/100</small></div>
            <div class="muted">{escape(site_report['status'])} &middot; Passed {counts['passed']} &middot; Warning {counts['warning']} &middot; Failed {counts['failed']}</div>
    """
    if detailed:
        html += """
            <table>
                <thead><tr><th>Test</th><th>Score</th><th style="width: 40%;"></th><th>Status</th></tr></thead>
                <tbody>"""
        for r in site_report["results"]:
            html += f"""
                <tr>
                    <td>{escape(r['test_name'])}</td>
                    <td>{r['score']}</td>
                    <td>{_bar(r['score'])}</td>
                    <td class="st-{r['status']}">{r['status'].upper()}</td>
                </tr>"""
        html += """
                </tbody>
            </table>"""

        recs = []
        for r in site_report["results"]:
            for rec in r["recommendations"]:
                if rec not in recs:
                    recs.append(rec)
        if recs:
            html += f"""
            <details open>
                <summary>Recommendations</summary>
                <ul>{''.join(f'<li>{escape(rec)}</li>' for rec in recs)}</ul>
            </details>"""

    html += """
        </div>
    </div>"""
    return html

def _comparison_table(report: Dict[str, Any]) -> str:
    comp = report["comparison"]
    names = {s["site"]["id"]: s["site"]["name"] for s in report["sites"]}
    head = "".join(f"<th>{escape(names.get(sid, sid))}</th>" for sid in comp["sites"])
    rows = ""
    for row in comp["rows"]:
        cells = ""
        for sid in comp["sites"]:
            score = row["scores"].get(sid)
            cells += f'<td style="color: {score_color(score)};">{score}</td>' if score is not None else "<td>-</td>"
        rows += f"<tr><td>{escape(row['name'])}</td>{cells}</tr>"
    return f"""
    <h2>Comparison</h2>
    <table>
        <thead><tr><th>Test</th>{head}</tr></thead>
        <tbody>{rows}</tbody>
    </table>"""

def render_html(report: Dict[str, Any]) -> str:
    """Standalone styled report with inline bar charts."""
    timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    s = report["summary"]
    avg = s["average_score"]

    html = f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{escape(report['title'])}</title>
    <style>
        :root {{ --bg: #0f1115; --card: #161b22; --border: #30363d; --text: #c9d1d9; --accent: #58a6ff; --crit: #dc2626; --pass: #22c55e; --warn: #eab308; }}
        body {{ font-family: 'Segoe UI', Inter, sans-serif; background: var(--bg); color: var(--text); padding: 40px; margin: 0; }}
        h1, h2, h3 {{ margin-top: 0; color: #fff; }}
        .header {{ border-bottom: 2px solid var(--border); padding-bottom: 20px; margin-bottom: 30px; display: flex; justify-content: space-between; align-items: end; }}
        .meta {{ font-family: monospace; opacity: 0.7; font-size: 0.9rem; text-align: right; }}
        .grid {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 20px; margin-bottom: 40px; }}
        .card {{ background: var(--card); border: 1px solid var(--border); border-radius: 6px; padding: 20px; text-align: center; }}
        .big {{ font-size: 2.5rem; font-weight: 800; }}
        .site {{ margin-bottom: 20px; background: var(--card); border: 1px solid var(--border); border-radius: 6px; overflow: hidden; }}
        .site-head {{ padding: 15px; background: rgba(255,255,255,0.03); display: flex; align-items: center; border-bottom: 1px solid var(--border); }}
        .site-body {{ padding: 15px; }}
        .badge {{ padding: 4px 8px; border-radius: 4px; font-weight: bold; font-size: 0.8rem; margin-right: 10px; color: #fff; }}
        .score {{ font-size: 2rem; font-weight: 800; }}
        .muted {{ opacity: 0.6; font-size: 0.85rem; }}
        table {{ width: 100%; border-collapse: collapse; margin-top: 15px; }}
        th, td {{ text-align: left; padding: 6px 8px; border-bottom: 1px solid var(--border); }}
        .bar {{ height: 10px; background: #333; border-radius: 5px; overflow: hidden; }}
        .bar div {{ height: 100%; }}
        .st-passed {{ color: var(--pass); font-weight: bold; }}
        .st-warning {{ color: var(--warn); font-weight: bold; }}
        .st-failed {{ color: var(--crit); font-weight: bold; }}
        details summary {{ cursor: pointer; color: var(--accent); margin-top: 10px; font-weight: 600; }}
    </style>
</head>
<body>

    <div class="header">
        <div>
            <h1>{escape(report['title'])}</h1>
            <div style="color: var(--accent); font-weight: bold; margin-top: 5px;">{report['report_type'].upper()} REPORT // DIGITAL TWIN SIMULATION</div>
        </div>
        <div class="meta">
            <div>Sites: {s['total_sites']}</div>
            <div>{timestamp}</div>
        </div>
    </div>

    <div class="grid">
        <div class="card"><h3>Average Score</h3><div class="big" style="color: {score_color(avg)};">{avg}</div></div>
        <div class="card"><h3>Critical Risk</h3><div class="big" style="color: var(--crit);">{s['critical_sites']}</div></div>
        <div class="card"><h3>High Risk</h3><div class="big" style="color: #ea580c;">{s['high_risk_sites']}</div></div>
        <div class="card">
            <h3>Test Outcomes</h3>
            <small>Passed {s['passed']} / Warning {s['warning']} / Failed {s['failed']}</small>
            <div style="margin-top: 10px; height: 10px; background: #333; border-radius: 5px; overflow: hidden; display: flex;">
                {_outcome_bar(s)}
            </div>
        </div>
    </div>

    <h2>Sites</h2>
    """

    detailed = report["report_type"] != "summary"
    for site_report in report["sites"]:
        html += _site_section(site_report, detailed)

    if report.get("comparison"):
        html += _comparison_table(report)

    html += """
    <div style="text-align: center; margin-top: 50px; opacity: 0.5; font-size: 0.8rem;">
        Generated by MCX Security Resilience Auditor. All results come from simulated digital twin runs.
    </div>
</body>
</html>
"""
    return html

def _outcome_bar(summary: Dict[str, Any]) -> str:
    total = summary["passed"] + summary["warning"] + summary["failed"]
    if not total:
        return ""
    parts = []
    for key, color in (("passed", "var(--pass)"), ("warning", "var(--warn)"), ("failed", "var(--crit)")):
        parts.append(f'<div style="width: {summary[key] / total * 100:.1f}%; background: {color};"></div>')
    return "".join(parts)

class HtmlReporter:
    def __init__(self, filename="report.html"):
        self.filename = filename

    def generate(self, report: Dict[str, Any]) -> str:
        with open(self.filename, "w", encoding="utf-8") as f:
            f.write(render_html(report))
        print(f"Report generated: {self.filename}")
        return self.filename
