from beanie import PydanticObjectId
from bson.errors import InvalidId

from app.core.exceptions import NotFoundError


def parse_object_id(value: str, what: str = "Resource") -> PydanticObjectId:
    """Path ids are opaque strings to clients; malformed ones are simply not found."""
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError) as e:
        raise NotFoundError(f"{what} not found") from e
