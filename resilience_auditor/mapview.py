# Leaflet layer options for the security map
from typing import Dict, Any, List, Optional

from .metadata import resilience_status
from .models import Site, TestSuite, MapViewState, to_jsonable

MARKER_COLORS = {
    "good": "#22c55e",
    "fair": "#eab308",
    "poor": "#ef4444",
}
SELECTED_OUTLINE = "#dc2626"

COVERAGE_RADIUS_M = 2000
HIGHLIGHT_RADIUS_M = 500

def marker_color(score: float) -> str:
    if score >= 80:
        return MARKER_COLORS["good"]
    if score >= 50:
        return MARKER_COLORS["fair"]
    return MARKER_COLORS["poor"]

def site_score(site: Site, suite: Optional[TestSuite] = None) -> int:
    """Suite score when one exists, otherwise the site's recorded score."""
    return suite.overall_score if suite is not None else site.security.resilience_score

def marker_options(score: float, selected: bool = False) -> Dict[str, Any]:
    return {
        "radius": 12 if selected else 8,
        "fillColor": marker_color(score),
        "color": SELECTED_OUTLINE if selected else "#ffffff",
        "weight": 3 if selected else 2,
        "opacity": 1,
        "fillOpacity": 0.9,
    }

def coverage_options(score: float, selected: bool = False) -> Dict[str, Any]:
    color = marker_color(score)
    return {
        "radius": COVERAGE_RADIUS_M,
        "color": color,
        "fillColor": color,
        "fillOpacity": 0.4 if selected else 0.25,
        "weight": 2 if selected else 1,
        "dashArray": "5, 5" if selected else "10, 10",
        "opacity": 1.0 if selected else 0.8,
        "interactive": False,
    }

def highlight_options() -> Dict[str, Any]:
    return {
        "radius": HIGHLIGHT_RADIUS_M,
        "color": SELECTED_OUTLINE,
        "fillColor": "transparent",
        "weight": 3,
        "dashArray": "10, 5",
        "opacity": 0.9,
        "interactive": False,
    }

def build_map_layers(sites: List[Site], suites: Dict[str, TestSuite],
                     view: MapViewState) -> Dict[str, Any]:
    markers = []
    for site in sites:
        score = site_score(site, suites.get(site.id))
        selected = view.selected_site_id == site.id
        markers.append({
            "site_id": site.id,
            "name": site.name,
            "position": [site.location.latitude, site.location.longitude],
            "infrastructure": site.infrastructure.type,
            "score": score,
            "status": resilience_status(score),
            "selected": selected,
            "highlighted": site.id in view.highlighted_sites,
            "marker": marker_options(score, selected),
            "coverage": coverage_options(score, selected),
            "highlight": highlight_options() if selected else None,
        })
    return {"view": to_jsonable(view), "markers": markers}
