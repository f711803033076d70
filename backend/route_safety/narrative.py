from __future__ import annotations

from .models import RouteMetrics

_LABEL_TITLES = {
    "safest": "Safest route",
    "fastest": "Fastest route",
    "alternative": "Alternative route",
}


def risk_factors(metrics: RouteMetrics) -> list[str]:
    factors: list[str] = []

    if metrics.lighting_score >= 70:
        factors.append("Well-lit streets")
    elif metrics.lighting_score >= 40:
        factors.append("Moderate lighting")
    else:
        factors.append("Poor street lighting")

    if metrics.crowd_score >= 60:
        factors.append("High foot traffic area")
    elif metrics.crowd_score >= 40:
        factors.append("Moderate foot traffic")
    else:
        factors.append("Low foot traffic")

    if metrics.shop_score >= 50:
        factors.append("Commercial area")

    if metrics.incident_impact > 30:
        factors.append("Recent incidents reported nearby")

    return factors


def route_narrative(metrics: RouteMetrics, *, label: str, duration_s: float) -> str:
    minutes = max(0, round(duration_s / 60.0))
    speed_kmh = metrics.length_km / (duration_s / 3600.0) if duration_s > 0 else 0.0

    parts = [
        f"{_LABEL_TITLES.get(label, 'Route')} covering {metrics.length_km:.1f}km "
        f"with {metrics.street_light_count} street lights.",
        f"Estimated travel time {minutes} minutes (~{speed_kmh:.0f} km/h avg).",
    ]

    if metrics.lighting_score >= 70:
        parts.append("Good visibility throughout the route.")
    elif metrics.lighting_score >= 40:
        parts.append("Moderate lighting, exercise caution in darker sections.")
    else:
        parts.append("Limited street lighting, extra caution advised.")

    if metrics.crowd_score >= 60:
        parts.append("High foot traffic area for better safety.")
    elif metrics.crowd_score >= 40:
        parts.append("Moderate pedestrian activity.")
    else:
        parts.append("Low foot traffic area.")

    return " ".join(parts)
