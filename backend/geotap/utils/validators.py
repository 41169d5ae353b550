"""Validation utilities for the application."""
import math
from datetime import datetime, time, timezone
from typing import Dict, List, Any, Optional

from geotap.utils.errors import InvalidInputError

# Width of the identifier and secret columns
MAX_IDENTIFIER_LENGTH = 255

class Validator:
    """Validation helper class."""

    @staticmethod
    def validate_required_fields(data: Dict, required_fields: List[str]) -> Dict[str, Any]:
        """Validate required fields in data. Zero and False count as present."""
        errors = []

        for field in required_fields:
            if field not in data or data[field] is None:
                errors.append(f"{field} is required")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

    @staticmethod
    def validate_coordinate(value: Any, name: str, limit: float) -> Dict[str, Any]:
        """Validate a latitude/longitude value against +/- limit degrees."""
        errors = []
        number = None

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"{name} must be a number")
        elif not math.isfinite(value):
            errors.append(f"{name} must be finite")
        elif value < -limit or value > limit:
            errors.append(f"Invalid {name}: {value}. Must be between {-limit:g} and {limit:g}")
        else:
            number = float(value)

        return {
            "is_valid": len(errors) == 0,
            "errors": errors,
            "value": number
        }

    @staticmethod
    def validate_latitude(value: Any) -> Dict[str, Any]:
        return Validator.validate_coordinate(value, 'latitude', 90.0)

    @staticmethod
    def validate_longitude(value: Any) -> Dict[str, Any]:
        return Validator.validate_coordinate(value, 'longitude', 180.0)

    @staticmethod
    def validate_secret(secret: Any, name: str = 'secret', max_length: Optional[int] = None) -> Dict[str, Any]:
        """A secret must be a string that is not blank after trimming."""
        errors = []

        if not isinstance(secret, str):
            errors.append(f"{name} must be a string")
        elif not secret.strip():
            errors.append(f"{name} cannot be empty")
        elif max_length is not None and len(secret) > max_length:
            errors.append(f"{name} must be at most {max_length} characters")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

    @staticmethod
    def validate_identifier(value: Any, name: str, max_length: int = MAX_IDENTIFIER_LENGTH) -> Dict[str, Any]:
        """Identifiers are opaque non-blank strings no wider than their column."""
        errors = []

        if not isinstance(value, str) or not value.strip():
            errors.append(f"{name} must be a non-empty string")
        elif len(value.strip()) > max_length:
            errors.append(f"{name} must be at most {max_length} characters")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

    @staticmethod
    def parse_datetime(value: Optional[str], name: str, end_of_day: bool = False) -> Optional[datetime]:
        """Parse an ISO date or instant from a query string. Dates expand to a whole day."""
        if value is None or value == '':
            return None
        try:
            if len(value) == 10:
                day = datetime.strptime(value, '%Y-%m-%d').date()
                return datetime.combine(day, time.max if end_of_day else time.min)
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            raise InvalidInputError(f"Invalid {name}: {value!r}. Use YYYY-MM-DD or ISO-8601")
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed

def require(result: Dict[str, Any]) -> Dict[str, Any]:
    """Raise InvalidInputError for a failed validation result."""
    if not result["is_valid"]:
        raise InvalidInputError("; ".join(result["errors"]))
    return result
