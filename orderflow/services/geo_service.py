"""
Approximate geolocation for warehouse selection.

Coordinates come from a curated table of major US cities with a loose
substring fallback and the US centroid as the last resort. Selection only
needs relative ordering between warehouses, so the table is deliberately
coarse and lookups never fail.
"""
import math
from dataclasses import dataclass
from typing import Optional

EARTH_RADIUS_KM = 6371


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


# Default when nothing matches: geographic center of the contiguous US
US_CENTROID = Coordinates(39.8283, -98.5795)

MAJOR_CITIES = {
    "New York": Coordinates(40.7128, -74.0060),
    "Los Angeles": Coordinates(34.0522, -118.2437),
    "Chicago": Coordinates(41.8781, -87.6298),
    "Houston": Coordinates(29.7604, -95.3698),
    "Phoenix": Coordinates(33.4484, -112.0740),
    "Philadelphia": Coordinates(39.9526, -75.1652),
    "San Antonio": Coordinates(29.4241, -98.4936),
    "San Diego": Coordinates(32.7157, -117.1611),
    "Dallas": Coordinates(32.7767, -96.7970),
    "San Jose": Coordinates(37.3382, -121.8863),
    "Austin": Coordinates(30.2672, -97.7431),
    "Jacksonville": Coordinates(30.3322, -81.6557),
    "Fort Worth": Coordinates(32.7555, -97.3308),
    "Columbus": Coordinates(39.9612, -82.9988),
    "Charlotte": Coordinates(35.2271, -80.8431),
    "San Francisco": Coordinates(37.7749, -122.4194),
    "Indianapolis": Coordinates(39.7684, -86.1581),
    "Seattle": Coordinates(47.6062, -122.3321),
    "Denver": Coordinates(39.7392, -104.9903),
    "Washington": Coordinates(38.9072, -77.0369),
    "Boston": Coordinates(42.3601, -71.0589),
    "El Paso": Coordinates(31.7619, -106.4850),
    "Nashville": Coordinates(36.1627, -86.7816),
    "Detroit": Coordinates(42.3314, -83.0458),
    "Oklahoma City": Coordinates(35.4676, -97.5164),
    "Portland": Coordinates(45.5152, -122.6784),
    "Las Vegas": Coordinates(36.1699, -115.1398),
    "Memphis": Coordinates(35.1495, -90.0490),
    "Louisville": Coordinates(38.2527, -85.7585),
    "Baltimore": Coordinates(39.2904, -76.6122),
    "Milwaukee": Coordinates(43.0389, -87.9065),
    "Albuquerque": Coordinates(35.0844, -106.6504),
    "Tucson": Coordinates(32.2226, -110.9747),
    "Fresno": Coordinates(36.7378, -119.7871),
    "Sacramento": Coordinates(38.5816, -121.4944),
    "Mesa": Coordinates(33.4152, -111.8315),
    "Kansas City": Coordinates(39.0997, -94.5786),
    "Atlanta": Coordinates(33.7490, -84.3880),
    "Long Beach": Coordinates(33.7701, -118.1937),
    "Colorado Springs": Coordinates(38.8339, -104.8214),
    "Raleigh": Coordinates(35.7796, -78.6382),
    "Miami": Coordinates(25.7617, -80.1918),
    "Virginia Beach": Coordinates(36.8529, -75.9780),
    "Omaha": Coordinates(41.2565, -95.9345),
    "Oakland": Coordinates(37.8044, -122.2712),
    "Minneapolis": Coordinates(44.9778, -93.2650),
    "Tulsa": Coordinates(36.1540, -95.9928),
    "Arlington": Coordinates(32.7357, -97.1081),
    "Tampa": Coordinates(27.9506, -82.4572),
    "New Orleans": Coordinates(29.9511, -90.0715),
}

US_STATE_CODES = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "district of columbia": "DC", "florida": "FL", "georgia": "GA", "hawaii": "HI",
    "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME",
    "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE",
    "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM",
    "new york": "NY", "north carolina": "NC", "north dakota": "ND", "ohio": "OH",
    "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI",
    "south carolina": "SC", "south dakota": "SD", "tennessee": "TN", "texas": "TX",
    "utah": "UT", "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY", "puerto rico": "PR",
}

COUNTRY_NAME_CODES = {
    "united states": "US",
    "united states of america": "US",
    "usa": "US",
}


def get_location_coordinates(
    city: Optional[str],
    state: Optional[str] = None,
    country: Optional[str] = None,
) -> Coordinates:
    """
    Resolve a city to approximate coordinates.

    Exact table match first, then a case-insensitive substring match in
    either direction, then the US centroid. State and country are accepted
    for interface stability but do not refine the lookup.
    """
    if not city:
        return US_CENTROID

    if city in MAJOR_CITIES:
        return MAJOR_CITIES[city]

    needle = city.lower()
    for city_name, coords in MAJOR_CITIES.items():
        candidate = city_name.lower()
        if candidate in needle or needle in candidate:
            return coords

    return US_CENTROID


def calculate_distance(origin: Coordinates, destination: Coordinates) -> float:
    """Great-circle distance in kilometers (haversine)."""
    d_lat = math.radians(destination.lat - origin.lat)
    d_lng = math.radians(destination.lng - origin.lng)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(origin.lat))
        * math.cos(math.radians(destination.lat))
        * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def get_country_code(country: Optional[str]) -> str:
    """ISO country code; full US names are mapped, anything else passes through."""
    if not country:
        return "US"
    return COUNTRY_NAME_CODES.get(country.strip().lower(), country)


def get_state_code(state: Optional[str], country_code: str = "US") -> Optional[str]:
    """Convert a US state name to its two-letter code; other values pass through."""
    if not state:
        return state
    if len(state) == 2 and state.upper() == state:
        return state
    if country_code != "US":
        return state
    return US_STATE_CODES.get(state.strip().lower(), state)
