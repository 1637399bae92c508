from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional, List, Union
from enum import Enum
import math

PASS_THRESHOLD = 80
WARNING_THRESHOLD = 60
AT_RISK_THRESHOLD = 60

class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

class TestCategory(str, Enum):
    JAMMING = "jamming"
    FLOODING = "flooding"
    SPOOFING = "spoofing"
    INJECTION = "injection"
    MANIPULATION = "manipulation"

class ResultStatus(str, Enum):
    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"

class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

class AlertStatus(str, Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"

INFRASTRUCTURE_TYPES = ("hospital", "power_plant", "emergency_services", "government", "other")

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))

def clamp_score(value: float) -> int:
    return max(0, min(100, round_half_up(value)))

def classify_score(score: float) -> ResultStatus:
    """Fixed thresholds: >=80 passed, >=60 warning, anything lower failed."""
    if score >= PASS_THRESHOLD:
        return ResultStatus.PASSED
    if score >= WARNING_THRESHOLD:
        return ResultStatus.WARNING
    return ResultStatus.FAILED

def risk_level_for(score: float) -> RiskLevel:
    if score >= 80:
        return RiskLevel.LOW
    if score >= 60:
        return RiskLevel.MEDIUM
    if score >= 40:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL

@dataclass
class Location:
    latitude: float
    longitude: float
    city: str = "Jeddah"
    region: str = ""

@dataclass
class Infrastructure:
    type: str = "other"
    criticality: str = "medium" # high, medium, low

@dataclass
class Vulnerability:
    id: str
    type: str
    severity: Severity
    description: str = ""
    affected_components: List[str] = field(default_factory=list)
    discovered_date: str = ""
    status: str = "open" # open, in_progress, resolved

@dataclass
class SecurityProfile:
    resilience_score: int
    last_audit_date: str = ""
    vulnerabilities: List[Vulnerability] = field(default_factory=list)

@dataclass
class NetworkNode:
    id: str
    type: str
    status: str = "active" # active, inactive, maintenance
    connections: List[str] = field(default_factory=list)

@dataclass
class TechnicalConfig:
    firmware_version: str = ""
    encryption_enabled: bool = True
    authentication_method: str = ""
    firewall_rules: List[str] = field(default_factory=list)
    access_control_policies: List[str] = field(default_factory=list)
    network_topology: List[NetworkNode] = field(default_factory=list)

@dataclass
class Site:
    id: str
    name: str
    location: Location
    infrastructure: Infrastructure
    security: SecurityProfile
    technical: TechnicalConfig = field(default_factory=TechnicalConfig)
    area: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)

@dataclass
class TestParameter:
    __test__ = False

    name: str
    type: str # string, number, boolean, select
    default: Union[str, int, float, bool, None] = None
    description: str = ""
    required: bool = False
    options: List[str] = field(default_factory=list)

@dataclass
class SecurityTest:
    id: str
    name: str
    category: TestCategory
    severity: Severity
    description: str = ""
    estimated_duration: int = 30 # seconds
    parameters: List[TestParameter] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)

@dataclass
class TestResult:
    __test__ = False

    test_id: str
    site_id: str
    score: int
    status: ResultStatus
    timestamp: str
    details: str = ""
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)

@dataclass
class TestSuite:
    """Synthetic per-site scores, one entry per catalog test."""
    __test__ = False

    site_id: str
    tests: Dict[str, int] = field(default_factory=dict)
    overall_score: int = 0
    risk_level: RiskLevel = RiskLevel.LOW

    def recompute(self):
        if self.tests:
            self.overall_score = clamp_score(sum(self.tests.values()) / len(self.tests))
        else:
            self.overall_score = 0
        self.risk_level = risk_level_for(self.overall_score)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)

@dataclass
class ExecutionStep:
    id: str
    name: str
    description: str
    duration: int
    status: StepStatus = StepStatus.PENDING
    score: Optional[int] = None
    details: Optional[str] = None

@dataclass
class KPIData:
    overall_network_resilience: int = 0
    critical_vulnerabilities: int = 0
    sites_at_risk: int = 0
    last_audit_coverage: int = 0

@dataclass
class ThreatAlert:
    id: str
    severity: Severity
    title: str
    description: str
    affected_sites: List[str] = field(default_factory=list)
    timestamp: str = ""
    recommendations: List[str] = field(default_factory=list)
    status: AlertStatus = AlertStatus.ACTIVE

@dataclass
class MapViewState:
    center: List[float] = field(default_factory=lambda: [21.4858, 39.1925]) # Jeddah
    zoom: int = 11
    selected_site_id: Optional[str] = None
    highlighted_sites: List[str] = field(default_factory=list)
    show_coverage_areas: bool = False

@dataclass
class TestExecutionState:
    __test__ = False

    is_running: bool = False
    current_test: Optional[SecurityTest] = None
    site_id: Optional[str] = None
    progress: float = 0.0
    status: str = ""
    results: List[TestResult] = field(default_factory=list)

def to_jsonable(obj: Any) -> Any:
    """Dataclasses/enums -> plain JSON types."""
    if hasattr(obj, "__dataclass_fields__"):
        return {k: to_jsonable(v) for k, v in asdict(obj).items()}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj
