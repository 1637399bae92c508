import os
import sys
import logging
from typing import Dict, Any, List, Optional

import requests
import yaml

from .models import (
    Site, Location, Infrastructure, SecurityProfile, Vulnerability, TechnicalConfig,
    NetworkNode, SecurityTest, TestParameter, TestCategory, Severity, clamp_score,
    INFRASTRUCTURE_TYPES,
)
from .demo import DemoScenario, DemoStep, DEMO_ACTIONS

logger = logging.getLogger("resilience_auditor.catalog")

class DataLoadError(Exception):
    """Raised when a site, test or demo catalog cannot be read or parsed."""

def get_catalog_dir() -> str:
    """Resolves the directory holding the bundled YAML catalogs."""
    if getattr(sys, 'frozen', False):
        return os.path.join(sys._MEIPASS, 'resilience_auditor', 'catalogs')
    return os.path.join(os.path.dirname(__file__), 'catalogs')

def default_sites_path() -> str:
    return os.path.join(get_catalog_dir(), 'sites.yaml')

def default_tests_path() -> str:
    return os.path.join(get_catalog_dir(), 'tests.yaml')

def default_demos_path() -> str:
    return os.path.join(get_catalog_dir(), 'demos.yaml')

def read_source(source: str, timeout: float = 10.0) -> Any:
    """Loads YAML (or JSON, a YAML subset) from a local path or an http(s) URL."""
    if source.startswith("http://") or source.startswith("https://"):
        try:
            resp = requests.get(source, timeout=timeout)
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise DataLoadError(f"Failed to fetch catalog {source}: {e}") from e
        text = resp.text
    else:
        try:
            with open(source, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise DataLoadError(f"Failed to read catalog {source}: {e}") from e

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DataLoadError(f"Malformed catalog {source}: {e}") from e

def _items(data: Any, key: str, source: str) -> List[Dict[str, Any]]:
    # Accept either a bare list or {key: [...]}
    if isinstance(data, dict):
        data = data.get(key, [])
    if data is None:
        return []
    if not isinstance(data, list):
        raise DataLoadError(f"Catalog {source} must contain a list of {key}")
    return data

# --- Sites ---

def parse_site(item: Dict[str, Any], idx: int = 0) -> Site:
    loc = item.get("location", {})
    infra = item.get("infrastructure", {})
    sec = item.get("security", {})
    tech = item.get("technical", {})

    infra_type = infra.get("type", "other")
    if infra_type not in INFRASTRUCTURE_TYPES:
        raise ValueError(f"unknown infrastructure type '{infra_type}'")

    vulns = [
        Vulnerability(
            id=str(v.get("id", f"vuln_{i}")),
            type=v.get("type", "unknown"),
            severity=Severity(v.get("severity", "medium")),
            description=v.get("description", ""),
            affected_components=list(v.get("affected_components", [])),
            discovered_date=str(v.get("discovered_date", "")),
            status=v.get("status", "open"),
        )
        for i, v in enumerate(sec.get("vulnerabilities", []) or [])
    ]

    nodes = [
        NetworkNode(
            id=str(n.get("id", f"node_{i}")),
            type=n.get("type", "unknown"),
            status=n.get("status", "active"),
            connections=list(n.get("connections", [])),
        )
        for i, n in enumerate(tech.get("network_topology", []) or [])
    ]

    return Site(
        id=str(item.get("id", f"site_{idx}")),
        name=item.get("name", f"MCX Site {idx + 1}"),
        area=item.get("area", ""),
        location=Location(
            latitude=float(loc["latitude"]),
            longitude=float(loc["longitude"]),
            city=loc.get("city", "Jeddah"),
            region=loc.get("region", ""),
        ),
        infrastructure=Infrastructure(
            type=infra_type,
            criticality=infra.get("criticality", "medium"),
        ),
        security=SecurityProfile(
            resilience_score=clamp_score(sec.get("resilience_score", 0)),
            last_audit_date=str(sec.get("last_audit_date", "")),
            vulnerabilities=vulns,
        ),
        technical=TechnicalConfig(
            firmware_version=str(tech.get("firmware_version", "")),
            encryption_enabled=bool(tech.get("encryption_enabled", True)),
            authentication_method=tech.get("authentication_method", ""),
            firewall_rules=list(tech.get("firewall_rules", [])),
            access_control_policies=list(tech.get("access_control_policies", [])),
            network_topology=nodes,
        ),
    )

def load_sites(source: Optional[str] = None, timeout: float = 10.0) -> List[Site]:
    source = source or default_sites_path()
    data = read_source(source, timeout)
    sites: List[Site] = []
    for idx, item in enumerate(_items(data, "sites", source)):
        try:
            sites.append(parse_site(item, idx))
        except (KeyError, TypeError, ValueError) as e:
            raise DataLoadError(f"Invalid site #{idx} in {source}: {e}") from e
    logger.info("Loaded %d sites from %s", len(sites), source)
    return sites

# --- Tests ---

def parse_test(item: Dict[str, Any], idx: int = 0) -> SecurityTest:
    params = [
        TestParameter(
            name=p["name"],
            type=p.get("type", "string"),
            default=p.get("default"),
            description=p.get("description", ""),
            required=bool(p.get("required", False)),
            options=list(p.get("options", [])),
        )
        for p in item.get("parameters", []) or []
    ]
    return SecurityTest(
        id=str(item.get("id", f"test_{idx}")),
        name=item.get("name", f"Test {idx + 1}"),
        category=TestCategory(item["category"]),
        severity=Severity(item.get("severity", "medium")),
        description=item.get("description", ""),
        estimated_duration=int(item.get("estimated_duration", 30)),
        parameters=params,
    )

def load_tests(source: Optional[str] = None, timeout: float = 10.0) -> List[SecurityTest]:
    source = source or default_tests_path()
    data = read_source(source, timeout)
    tests: List[SecurityTest] = []
    for idx, item in enumerate(_items(data, "tests", source)):
        try:
            tests.append(parse_test(item, idx))
        except (KeyError, TypeError, ValueError) as e:
            raise DataLoadError(f"Invalid test #{idx} in {source}: {e}") from e
    logger.info("Loaded %d test definitions from %s", len(tests), source)
    return tests

# --- Demo scenarios ---

def parse_demo_scenario(item: Dict[str, Any], idx: int = 0) -> DemoScenario:
    steps = []
    for i, s in enumerate(item.get("steps", []) or []):
        action = s.get("action", "pause")
        if action not in DEMO_ACTIONS:
            raise ValueError(f"unknown demo action '{action}'")
        steps.append(DemoStep(
            id=str(s.get("id", f"step_{i}")),
            name=s.get("name", action.replace("_", " ").title()),
            description=s.get("description", ""),
            action=action,
            params=dict(s.get("params", {}) or {}),
            duration=float(s.get("duration", 3)),
        ))
    return DemoScenario(
        id=str(item.get("id", f"scenario_{idx}")),
        name=item.get("name", f"Scenario {idx + 1}"),
        description=item.get("description", ""),
        steps=steps,
    )

def load_demo_scenarios(source: Optional[str] = None, timeout: float = 10.0) -> List[DemoScenario]:
    source = source or default_demos_path()
    data = read_source(source, timeout)
    scenarios: List[DemoScenario] = []
    for idx, item in enumerate(_items(data, "scenarios", source)):
        try:
            scenarios.append(parse_demo_scenario(item, idx))
        except (KeyError, TypeError, ValueError) as e:
            raise DataLoadError(f"Invalid demo scenario #{idx} in {source}: {e}") from e
    logger.info("Loaded %d demo scenarios from %s", len(scenarios), source)
    return scenarios
