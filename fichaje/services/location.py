from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt

from fichaje.models import WorkCenter


@dataclass(frozen=True)
class LocationEvaluation:
    has_location: bool
    is_within_allowed_area: bool | None
    requires_review: bool
    work_center_id: int | None
    distance_m: float | None
    reason: str


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    earth_radius_m = 6371000.0

    lat1_rad = radians(lat1)
    lon1_rad = radians(lon1)
    lat2_rad = radians(lat2)
    lon2_rad = radians(lon2)

    delta_lat = lat2_rad - lat1_rad
    delta_lon = lon2_rad - lon1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    c = 2 * asin(sqrt(a))
    return earth_radius_m * c


def evaluate_location(
    work_centers: Sequence[WorkCenter],
    lat: float | None,
    lon: float | None,
) -> LocationEvaluation:
    if lat is None or lon is None:
        return LocationEvaluation(
            has_location=False,
            is_within_allowed_area=None,
            requires_review=False,
            work_center_id=None,
            distance_m=None,
            reason="no_location_payload",
        )

    active_centers = [center for center in work_centers if center.is_active]
    if not active_centers:
        return LocationEvaluation(
            has_location=True,
            is_within_allowed_area=None,
            requires_review=False,
            work_center_id=None,
            distance_m=None,
            reason="work_center_not_set",
        )

    nearest = min(
        active_centers,
        key=lambda center: distance_m(center.latitude, center.longitude, lat, lon),
    )
    distance_value = round(distance_m(nearest.latitude, nearest.longitude, lat, lon), 2)
    within = distance_value <= nearest.allowed_radius_m
    return LocationEvaluation(
        has_location=True,
        is_within_allowed_area=within,
        requires_review=not within,
        work_center_id=nearest.id,
        distance_m=distance_value,
        reason="inside_work_center" if within else "outside_work_center",
    )
