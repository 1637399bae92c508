# Central Simulation Registry
# Step templates, canned recommendations and display colors per test category
from typing import Dict, Any, List

# Each template: (id, name, description, weight of total duration, minimum seconds)
BASE_STEPS = [
    ("init", "Deploying Digital Twin",
     "Creating secure digital twin simulation environment based on target site configuration", 0.15, 2),
    ("baseline", "Establishing Baseline",
     "Measuring normal system performance and security metrics in simulation", 0.2, 3),
]

FINAL_STEPS = [
    ("analysis", "Results Analysis",
     "Analyzing simulation results and calculating security resilience scores", 0.1, 2),
]

CATEGORY_KNOWLEDGE_BASE: Dict[str, Dict[str, Any]] = {
    "jamming": {
        "label": "Jamming",
        "color": "#ef4444",
        "steps": [
            ("signal_analysis", "Signal Analysis",
             "Analyzing simulated signal characteristics and vulnerability patterns in digital twin", 0.25, 4),
            ("jamming_execution", "Jamming Attack Simulation",
             "Executing controlled jamming attack simulation in isolated digital twin environment", 0.3, 5),
        ],
        "recommendations": [
            "Deploy anti-jamming countermeasures based on simulation results",
            "Implement frequency hopping and signal diversity",
        ],
    },
    "flooding": {
        "label": "Flooding",
        "color": "#f97316",
        "steps": [
            ("capacity_analysis", "Capacity Analysis",
             "Analyzing simulated system capacity limits and performance thresholds", 0.2, 3),
            ("flood_simulation", "Flooding Attack Simulation",
             "Simulating high-volume request flooding in controlled digital twin environment", 0.35, 6),
        ],
        "recommendations": [
            "Strengthen rate limiting based on capacity analysis",
            "Deploy adaptive DDoS protection mechanisms",
        ],
    },
    "spoofing": {
        "label": "Spoofing",
        "color": "#eab308",
        "steps": [
            ("identity_analysis", "Identity Analysis",
             "Analyzing simulated authentication and identity verification systems", 0.25, 4),
            ("spoofing_attempt", "Spoofing Attack Simulation",
             "Testing spoofing attack vectors against digital twin identity systems", 0.3, 5),
        ],
        "recommendations": [
            "Enhance authentication protocols per simulation findings",
            "Implement multi-factor authentication and certificate validation",
        ],
    },
    "injection": {
        "label": "Injection",
        "color": "#3b82f6",
        "steps": [
            ("payload_preparation", "Payload Preparation",
             "Preparing test payloads and injection vectors for digital twin testing", 0.25, 4),
            ("injection_test", "Injection Attack Simulation",
             "Executing controlled injection attack simulation in isolated environment", 0.3, 5),
        ],
        "recommendations": [
            "Strengthen input validation and sanitization",
            "Deploy advanced intrusion detection systems",
        ],
    },
    "manipulation": {
        "label": "Manipulation",
        "color": "#8b5cf6",
        "steps": [
            ("traffic_analysis", "Traffic Analysis",
             "Analyzing simulated network traffic patterns and protocol vulnerabilities", 0.25, 4),
            ("manipulation_test", "Data Manipulation Simulation",
             "Testing data integrity and manipulation detection in digital twin environment", 0.3, 5),
        ],
        "recommendations": [
            "Implement data integrity monitoring",
            "Deploy cryptographic data protection mechanisms",
        ],
    },
}

CRITICAL_RECOMMENDATIONS = [
    "Critical vulnerabilities detected in simulation - immediate action required",
    "Deploy security patches to production environment",
]

GAP_RECOMMENDATIONS = [
    "Simulation reveals potential security gaps - enhance defenses",
    "Schedule regular digital twin security assessments",
]

# Marker / badge colors
SCORE_COLORS = {
    "good": "#22c55e",
    "moderate": "#eab308",
    "poor": "#f97316",
    "bad": "#ef4444",
}

RISK_COLORS = {
    "low": "#16a34a",
    "medium": "#ca8a04",
    "high": "#ea580c",
    "critical": "#dc2626",
}

def get_category(category: str) -> Dict[str, Any]:
    category = getattr(category, "value", category)
    meta = CATEGORY_KNOWLEDGE_BASE.get(category, {})
    if not meta:
        # Unknown categories still get base + final steps
        return {
            "label": str(category).replace("_", " ").title(),
            "color": "#6b7280",
            "steps": [],
            "recommendations": [],
        }
    return meta

def generate_recommendations(category: str, score: int) -> List[str]:
    recommendations: List[str] = []
    if score < 60:
        recommendations.extend(CRITICAL_RECOMMENDATIONS)
    if score < 80:
        recommendations.extend(GAP_RECOMMENDATIONS)
    if score < 70:
        recommendations.extend(get_category(category)["recommendations"])
    return recommendations

def score_color(score: float) -> str:
    if score >= 80:
        return SCORE_COLORS["good"]
    if score >= 60:
        return SCORE_COLORS["moderate"]
    if score >= 40:
        return SCORE_COLORS["poor"]
    return SCORE_COLORS["bad"]

def resilience_status(score: float) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    return "Poor"
