"External place-search providers."

from .places import Geocode, NearbyResult, PlaceCandidate, PlacesClient, candidate_from_nearby_v1

__all__ = ["Geocode", "NearbyResult", "PlaceCandidate", "PlacesClient", "candidate_from_nearby_v1"]
