# herbchain/core/geo.py
"""Zone containment tests used by geo-fence rules."""

from typing import Optional, Sequence

from herbchain.models.rules import HarvestZone, LatLng


def in_bounds(lat: float, lng: float, bounds: Sequence[LatLng]) -> bool:
    (min_lat, min_lng), (max_lat, max_lng) = bounds
    return min_lat <= lat <= max_lat and min_lng <= lng <= max_lng


def in_polygon(lat: float, lng: float, polygon: Sequence[LatLng]) -> bool:
    """Ray-casting test; vertices are (lat, lng) pairs, closing vertex optional."""
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        lat_i, lng_i = polygon[i]
        lat_j, lng_j = polygon[j]
        if (lng_i > lng) != (lng_j > lng):
            crossing = (lat_j - lat_i) * (lng - lng_i) / (lng_j - lng_i) + lat_i
            if lat < crossing:
                inside = not inside
        j = i
    return inside


def zone_contains(zone: HarvestZone, lat: float, lng: float) -> bool:
    if zone.polygon:
        return in_polygon(lat, lng, zone.polygon)
    return in_bounds(lat, lng, zone.bounds)


def find_zone(zones: Sequence[HarvestZone], lat: float, lng: float) -> Optional[HarvestZone]:
    return next((z for z in zones if zone_contains(z, lat, lng)), None)
