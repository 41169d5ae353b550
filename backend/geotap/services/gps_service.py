"""GPS geofence verification service."""
from typing import Dict

from geopy.distance import geodesic

class GPSService:
    """Service for GPS and location verification."""

    # Round-trip error of the geodesic solver is in the nanometer range;
    # a point placed exactly on the boundary must still count as inside.
    BOUNDARY_TOLERANCE_METERS = 1e-6

    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Geodesic distance between two WGS-84 points in meters."""
        return geodesic((lat1, lon1), (lat2, lon2)).meters

    @staticmethod
    def verify_location(user_lat: float, user_lng: float, classroom, radius_meters: float) -> Dict:
        """Verify if user is within the classroom geofence. The boundary is inclusive."""
        distance = GPSService.calculate_distance(
            user_lat, user_lng,
            classroom.latitude, classroom.longitude
        )

        is_inside = distance <= radius_meters + GPSService.BOUNDARY_TOLERANCE_METERS

        return {
            'is_inside': is_inside,
            'distance': distance,
            'radius': radius_meters,
            'classroom_center': {
                'latitude': classroom.latitude,
                'longitude': classroom.longitude
            }
        }
