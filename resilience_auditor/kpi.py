from typing import Callable, Dict, List, Optional

from .models import Site, TestSuite, KPIData, RiskLevel, AT_RISK_THRESHOLD, round_half_up

def calculate_kpi_data(sites: List[Site], suites: Dict[str, TestSuite],
                       suite_factory: Optional[Callable[[Site], TestSuite]] = None) -> KPIData:
    """
    Network-wide aggregates over every site's test suite.
    Sites without a suite get one from `suite_factory`; without a factory they are skipped
    (and do not count towards audit coverage).
    """
    total_sites = len(sites)
    if total_sites == 0:
        return KPIData()

    total_score = 0
    critical = 0
    at_risk = 0
    audited = 0

    for site in sites:
        suite = suites.get(site.id)
        if suite is None and suite_factory is not None:
            suite = suite_factory(site)
        if suite is None:
            continue

        total_score += suite.overall_score
        if suite.risk_level == RiskLevel.CRITICAL:
            critical += 1
        if suite.overall_score < AT_RISK_THRESHOLD:
            at_risk += 1
        audited += 1

    return KPIData(
        overall_network_resilience=round_half_up(total_score / total_sites),
        critical_vulnerabilities=critical,
        sites_at_risk=at_risk,
        last_audit_coverage=round_half_up(audited / total_sites * 100),
    )
