import datetime
from typing import Dict, Any

from fpdf import FPDF

STATUS_RGB = {
    "passed": (34, 197, 94),
    "warning": (202, 138, 4),
    "failed": (220, 38, 38),
}

def sanitize(text) -> str:
    # Core PDF fonts are latin-1 only
    return str(text).encode('latin-1', 'replace').decode('latin-1')

class ReportPDF(FPDF):
    def header(self):
        self.set_font('Helvetica', 'B', 12)
        self.cell(0, 10, 'MCX Security Resilience Auditor', 0, 1, 'C')
        self.ln(2)

    def footer(self):
        self.set_y(-15)
        self.set_font('Helvetica', 'I', 8)
        self.cell(0, 10, f'Page {self.page_no()} - simulated digital twin results', 0, 0, 'C')

    def section_title(self, title):
        self.set_font('Helvetica', 'B', 13)
        self.set_fill_color(200, 220, 255)
        self.cell(0, 9, sanitize(title), 0, 1, 'L', 1)
        self.ln(2)

    def key_value(self, key, value):
        self.set_font('Helvetica', 'B', 10)
        self.cell(55, 6, sanitize(key), 0, 0)
        self.set_font('Helvetica', '', 10)
        self.cell(0, 6, sanitize(value), 0, 1)

    def score_bar(self, score: int, width: float = 60):
        x, y = self.get_x(), self.get_y() + 1.5
        self.set_fill_color(60, 60, 60)
        self.rect(x, y, width, 3, 'F')
        r, g, b = STATUS_RGB["passed" if score >= 80 else "warning" if score >= 60 else "failed"]
        self.set_fill_color(r, g, b)
        self.rect(x, y, width * max(0, min(score, 100)) / 100, 3, 'F')

def _build_pdf(report: Dict[str, Any]) -> ReportPDF:
    pdf = ReportPDF()
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()

    pdf.set_font('Helvetica', 'B', 20)
    pdf.cell(0, 12, sanitize(report["title"]), 0, 1, 'C')
    pdf.set_font('Helvetica', '', 11)
    pdf.cell(0, 8, f"{report['report_type'].title()} report - {datetime.datetime.now().strftime('%Y-%m-%d %H:%M')}", 0, 1, 'C')
    pdf.ln(6)

    s = report["summary"]
    pdf.section_title("Summary")
    pdf.key_value("Sites assessed", s["total_sites"])
    pdf.key_value("Average score", f"{s['average_score']}/100")
    pdf.key_value("Critical risk sites", s["critical_sites"])
    pdf.key_value("High risk sites", s["high_risk_sites"])
    pdf.key_value("Tests passed/warning/failed", f"{s['passed']}/{s['warning']}/{s['failed']}")
    pdf.ln(4)

    detailed = report["report_type"] != "summary"
    for site_report in report["sites"]:
        site = site_report["site"]
        suite = site_report["suite"]
        pdf.section_title(f"{site['name']} ({site['id']})")
        pdf.key_value("Infrastructure", f"{site['infrastructure']['type']} / {site['infrastructure']['criticality']}")
        pdf.key_value("Overall score", f"{suite['overall_score']}/100 ({suite['risk_level']} risk)")
        if not detailed:
            pdf.ln(2)
            continue

        pdf.ln(1)
        for r in site_report["results"]:
            pdf.set_font('Helvetica', '', 9)
            pdf.cell(70, 6, sanitize(r["test_name"]), 0, 0)
            pdf.cell(15, 6, str(r["score"]), 0, 0, 'R')
            pdf.cell(5, 6, "", 0, 0)
            pdf.score_bar(r["score"])
            pdf.cell(62, 6, "", 0, 0)
            rgb = STATUS_RGB.get(r["status"], (0, 0, 0))
            pdf.set_text_color(*rgb)
            pdf.set_font('Helvetica', 'B', 9)
            pdf.cell(0, 6, r["status"].upper(), 0, 1)
            pdf.set_text_color(0, 0, 0)
        pdf.ln(3)

    if report.get("comparison"):
        comp = report["comparison"]
        pdf.add_page()
        pdf.section_title("Comparison")
        col = max(12, min(25, 110 / max(1, len(comp["sites"]))))
        pdf.set_font('Helvetica', 'B', 8)
        pdf.cell(60, 6, "Test", 1, 0)
        for sid in comp["sites"]:
            pdf.cell(col, 6, sanitize(sid), 1, 0, 'C')
        pdf.ln()
        pdf.set_font('Helvetica', '', 8)
        for row in comp["rows"]:
            pdf.cell(60, 6, sanitize(row["name"]), 1, 0)
            for sid in comp["sites"]:
                score = row["scores"].get(sid)
                pdf.cell(col, 6, "-" if score is None else str(score), 1, 0, 'C')
            pdf.ln()
    return pdf

def render_pdf(report: Dict[str, Any]) -> bytes:
    return bytes(_build_pdf(report).output())

class PdfReporter:
    def __init__(self, filename="report.pdf"):
        self.filename = filename

    def generate(self, report: Dict[str, Any]) -> str:
        _build_pdf(report).output(self.filename)
        print(f"PDF Report written to: {self.filename}")
        return self.filename
