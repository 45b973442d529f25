"""Bundled reference data: Corpus Christi safe zones, flood zones, sample profiles.

The static safe-zone catalog is the fallback whenever the live places
provider is unconfigured, unreachable, or returns nothing.  Flood zones
are the circles used by the ranking flood penalty.
"""

from __future__ import annotations

from typing import Final

import structlog

from src.models.enums import DestinationCategory
from src.models.evacuation import FloodZone, SafeDestination
from src.models.profile import EmergencyProfile

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Corpus Christi shelters
# ---------------------------------------------------------------------------

_SAFE_ZONES: Final[list[dict]] = [
    {
        "id": "1",
        "name": "Richard M. Borchard Regional Fairgrounds",
        "address": "1213 Terry Shamsie Blvd, Robstown, TX",
        "lat": 27.7908,
        "lng": -97.6689,
        "capacity": 2000,
        "category": "major_shelter",
        "facilities": ["medical", "food", "water", "pet_friendly"],
        "description": "Large fairground facility with extensive shelter capacity",
    },
    {
        "id": "2",
        "name": "Del Mar College East Campus",
        "address": "3209 S Staples St, Corpus Christi, TX",
        "lat": 27.7569,
        "lng": -97.3681,
        "capacity": 1500,
        "category": "major_shelter",
        "facilities": ["medical", "food", "water"],
        "description": "College campus with multiple buildings for shelter",
    },
    {
        "id": "3",
        "name": "American Bank Center",
        "address": "1901 N Shoreline Blvd, Corpus Christi, TX",
        "lat": 27.8052,
        "lng": -97.3972,
        "capacity": 3000,
        "category": "major_shelter",
        "facilities": ["medical", "food", "water", "special_needs"],
        "description": "Large arena facility, main evacuation center",
    },
    {
        "id": "4",
        "name": "Flour Bluff High School",
        "address": "2505 Waldron Rd, Corpus Christi, TX",
        "lat": 27.6589,
        "lng": -97.3289,
        "capacity": 800,
        "category": "general_shelter",
        "facilities": ["food", "water"],
        "description": "High school gymnasium and facilities",
    },
    {
        "id": "5",
        "name": "King High School",
        "address": "5225 Gollihar Rd, Corpus Christi, TX",
        "lat": 27.7169,
        "lng": -97.4289,
        "capacity": 900,
        "category": "general_shelter",
        "facilities": ["food", "water", "pet_friendly"],
        "description": "High school with shelter facilities",
    },
    {
        "id": "6",
        "name": "Ray High School",
        "address": "2929 Swantner Dr, Corpus Christi, TX",
        "lat": 27.7919,
        "lng": -97.4589,
        "capacity": 850,
        "category": "general_shelter",
        "facilities": ["food", "water"],
        "description": "High school shelter location",
    },
    {
        "id": "7",
        "name": "Corpus Christi Medical Center Bay Area",
        "address": "7101 S Padre Island Dr, Corpus Christi, TX",
        "lat": 27.6369,
        "lng": -97.2869,
        "capacity": 300,
        "category": "medical_facility",
        "facilities": ["medical", "special_needs", "dialysis", "oxygen"],
        "description": "Hospital with special medical needs support",
    },
    {
        "id": "8",
        "name": "CHRISTUS Spohn Hospital Corpus Christi - Shoreline",
        "address": "600 Elizabeth St, Corpus Christi, TX",
        "lat": 27.8009,
        "lng": -97.3939,
        "capacity": 350,
        "category": "medical_facility",
        "facilities": ["medical", "special_needs", "dialysis", "oxygen"],
        "description": "Main hospital facility with emergency services",
    },
]

# Corpus Christi city centre, used to bias geocoding.
CORPUS_CHRISTI_CENTER: Final[tuple[float, float]] = (27.8006, -97.3964)

# ---------------------------------------------------------------------------
# Flood-prone areas
# ---------------------------------------------------------------------------

_FLOOD_ZONES: Final[list[dict]] = [
    {"name": "Oso Bay", "lat": 27.6800, "lng": -97.2400, "radius_km": 2.0},
    {"name": "Laguna Madre", "lat": 27.7200, "lng": -97.2800, "radius_km": 1.5},
    {"name": "Port area", "lat": 27.8300, "lng": -97.3500, "radius_km": 1.0},
]

# ---------------------------------------------------------------------------
# Sample caller profiles (seeded into an empty profile store)
# ---------------------------------------------------------------------------

SEED_PROFILES: Final[list[EmergencyProfile]] = [
    EmergencyProfile(
        user_id="user1",
        name="John Peter",
        age="35",
        sex="Male",
        emergency_contact="361 555 1110",
        location="1702 Ennis Joslin Rd, Corpus Christi, TX 72412",
        medical_info="Specially Abled",
    ),
    EmergencyProfile(
        user_id="user2",
        name="Jane Smith",
        age="28",
        sex="Female",
        emergency_contact="+1-555-0101",
        location="456 Oak Ave, Austin, TX 78702",
        medical_info="Allergic to penicillin",
    ),
]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_safe_zones() -> list[SafeDestination]:
    """Return the bundled Corpus Christi shelter catalog in catalog order."""
    zones = [
        SafeDestination(**{**entry, "category": DestinationCategory(entry["category"])})
        for entry in _SAFE_ZONES
    ]
    logger.debug("seed.safe_zones_loaded", count=len(zones))
    return zones


def load_flood_zones() -> list[FloodZone]:
    return [FloodZone(**entry) for entry in _FLOOD_ZONES]
