from dataclasses import dataclass, asdict
from typing import Dict, Optional, Tuple

BOUNDS_OFFSET = 0.02  # degrees, roughly 1.2 miles each way


@dataclass(frozen=True)
class Neighborhood:
    slug: str
    name: str
    lat: float
    lng: float
    need_score: int

    def bounds(self, offset: float = BOUNDS_OFFSET) -> Dict[str, float]:
        return {
            "north": self.lat + offset,
            "south": self.lat - offset,
            "east": self.lng + offset,
            "west": self.lng - offset,
        }

    def as_dict(self) -> dict:
        return {**asdict(self), "bounds": self.bounds()}


CHICAGO_NEIGHBORHOODS: Tuple[Neighborhood, ...] = (
    Neighborhood("loop", "Loop", 41.8781, -87.6298, 45),
    Neighborhood("river-north", "River North", 41.8906, -87.6336, 32),
    Neighborhood("lincoln-park", "Lincoln Park", 41.9217, -87.6489, 28),
    Neighborhood("wicker-park", "Wicker Park", 41.9096, -87.6773, 38),
    Neighborhood("logan-square", "Logan Square", 41.9289, -87.7054, 52),
    Neighborhood("bucktown", "Bucktown", 41.9196, -87.6810, 35),
    Neighborhood("pilsen", "Pilsen", 41.8564, -87.6598, 68),
    Neighborhood("hyde-park", "Hyde Park", 41.7943, -87.5907, 41),
    Neighborhood("wrigleyville", "Wrigleyville", 41.9484, -87.6553, 29),
    Neighborhood("gold-coast", "Gold Coast", 41.9029, -87.6278, 22),
    Neighborhood("south-loop", "South Loop", 41.8686, -87.6270, 48),
    Neighborhood("west-loop", "West Loop", 41.8825, -87.6470, 36),
    Neighborhood("bronzeville", "Bronzeville", 41.8184, -87.6159, 71),
    Neighborhood("uptown", "Uptown", 41.9658, -87.6564, 55),
    Neighborhood("andersonville", "Andersonville", 41.9797, -87.6686, 31),
    Neighborhood("old-town", "Old Town", 41.9120, -87.6348, 26),
    Neighborhood("streeterville", "Streeterville", 41.8920, -87.6198, 24),
    Neighborhood("chinatown", "Chinatown", 41.8528, -87.6325, 58),
)


def get_neighborhood_by_slug(slug: str) -> Optional[Neighborhood]:
    return next((n for n in CHICAGO_NEIGHBORHOODS if n.slug == slug), None)
