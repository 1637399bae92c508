"""
Synthetic Security Data
Per-site test suites, the results derived from them, and threat alerts.
Everything is seeded so the same site id always yields the same numbers.
"""
import datetime
import random
from typing import Dict, List, Optional

from .metadata import generate_recommendations
from .models import (
    Site, SecurityTest, TestSuite, TestResult, ThreatAlert, Severity, RiskLevel,
    AlertStatus, classify_score, clamp_score, AT_RISK_THRESHOLD,
)

SCORE_SPREAD = 15
WIDESPREAD_MIN_SITES = 2

SEVERITY_ORDER = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}

def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()

def site_rng(site_id: str, seed: int = 0) -> random.Random:
    return random.Random(f"{seed}:{site_id}")

def generate_test_suite(site: Site, tests: List[SecurityTest], seed: int = 0) -> TestSuite:
    """Scores scatter around the site's recorded resilience score."""
    rng = site_rng(site.id, seed)
    base = site.security.resilience_score
    scores = {t.id: clamp_score(base + rng.randint(-SCORE_SPREAD, SCORE_SPREAD)) for t in tests}
    return TestSuite(site_id=site.id, tests=scores).recompute()

def results_from_suite(suite: TestSuite, tests: List[SecurityTest],
                       timestamp: Optional[str] = None) -> List[TestResult]:
    timestamp = timestamp or _now()
    results = []
    for test in tests:
        if test.id not in suite.tests:
            continue
        score = suite.tests[test.id]
        results.append(TestResult(
            test_id=test.id,
            site_id=suite.site_id,
            score=score,
            status=classify_score(score),
            timestamp=timestamp,
            details=f"{test.name} scored {score}/100 against the digital twin",
            recommendations=generate_recommendations(test.category, score),
        ))
    return results

def generate_threat_alerts(sites: List[Site], suites: Dict[str, TestSuite],
                           tests: List[SecurityTest],
                           previous: Optional[List[ThreatAlert]] = None) -> List[ThreatAlert]:
    """
    Derives alerts from current suites and open vulnerabilities.

    Alert ids are stable, so acknowledged/resolved status and the original
    timestamp carry over from `previous`.
    """
    known = {a.id: a for a in (previous or [])}
    alerts: List[ThreatAlert] = []

    def add(alert: ThreatAlert):
        old = known.get(alert.id)
        if old is not None:
            alert.status = old.status
            alert.timestamp = old.timestamp or alert.timestamp
        alerts.append(alert)

    now = _now()
    names = {s.id: s.name for s in sites}

    # 1. Sites at critical risk
    for site in sites:
        suite = suites.get(site.id)
        if suite is None or suite.risk_level != RiskLevel.CRITICAL:
            continue
        add(ThreatAlert(
            id=f"alert-site-{site.id}",
            severity=Severity.CRITICAL,
            title=f"Critical resilience score at {site.name}",
            description=f"Overall simulated resilience dropped to {suite.overall_score}/100.",
            affected_sites=[site.id],
            timestamp=now,
            recommendations=generate_recommendations(None, suite.overall_score)[:2],
        ))

    # 2. Same test failing at several sites
    for test in tests:
        weak = [sid for sid, suite in suites.items()
                if sid in names and suite.tests.get(test.id, 100) < AT_RISK_THRESHOLD]
        if len(weak) < WIDESPREAD_MIN_SITES:
            continue
        add(ThreatAlert(
            id=f"alert-test-{test.id}",
            severity=Severity.HIGH if test.severity == Severity.CRITICAL else Severity.MEDIUM,
            title=f"Widespread {test.name} exposure",
            description=f"{len(weak)} sites scored below {AT_RISK_THRESHOLD} on {test.name}.",
            affected_sites=sorted(weak),
            timestamp=now,
            recommendations=generate_recommendations(test.category, 0)[-2:],
        ))

    # 3. Open critical/high vulnerabilities
    for site in sites:
        for vuln in site.security.vulnerabilities:
            if vuln.status == "resolved" or vuln.severity not in (Severity.CRITICAL, Severity.HIGH):
                continue
            add(ThreatAlert(
                id=f"alert-vuln-{vuln.id}",
                severity=vuln.severity,
                title=f"Unresolved {vuln.type.replace('_', ' ')} vulnerability",
                description=vuln.description,
                affected_sites=[site.id],
                timestamp=vuln.discovered_date or now,
                recommendations=["Schedule regular digital twin security assessments"],
            ))

    alerts.sort(key=lambda a: (SEVERITY_ORDER.get(a.severity, 9), a.id))
    return alerts

def active_alert_count(alerts: List[ThreatAlert]) -> int:
    return sum(1 for a in alerts if a.status == AlertStatus.ACTIVE)
