"""
house_resolver.py – Map a device-facing identifier to a canonical house.

Gateways address houses in one of two shapes:

* an opaque device string (``"farm7-house03"``) stored in ``houses.device_id``;
* the house's canonical UUID.

The device string is tried first.  Only if that misses, and the identifier is
a UUID in canonical lowercase hyphenated form, is the primary key tried.  That
is the only spelling the event insert matches, so other spellings of a UUID
(uppercase, braced, ``urn:uuid:``) resolve nowhere.
"""

import logging
from uuid import UUID

from flockwatch.common.config import settings
from flockwatch.common.errors import HouseNotFound
from flockwatch.common.models import House
from flockwatch.common.store import SensorStore

logger = logging.getLogger(__name__)


def _as_uuid(identifier: str) -> UUID | None:
    """Parse ``identifier`` only if it is canonical UUID text, as ``houses.id::text`` renders it."""
    try:
        parsed = UUID(identifier)
    except ValueError:
        return None
    return parsed if str(parsed) == identifier else None


class HouseResolver:
    """
    Resolve identifiers to ``House`` records with a usable bird age.

    Parameters
    ----------
    store:
        Durable store used for the lookups.
    default_bird_age_days:
        Age substituted when the stored age is null.  Defaults to
        ``settings.default_bird_age_days`` (21, a mid-cycle baseline).
    """

    def __init__(self, store: SensorStore, default_bird_age_days: int | None = None) -> None:
        self._store = store
        self._default_age = (
            settings.default_bird_age_days
            if default_bird_age_days is None
            else default_bird_age_days
        )

    def resolve(self, identifier: str) -> House:
        """
        Return the house addressed by ``identifier``.

        The returned record always has ``bird_age_days`` set.

        Raises
        ------
        HouseNotFound
            If neither the device-id nor the UUID lookup matches.
        """
        house = self._store.find_house_by_device_id(identifier)
        if house is None:
            house_uuid = _as_uuid(identifier)
            if house_uuid is not None:
                house = self._store.find_house_by_id(house_uuid)
        if house is None:
            raise HouseNotFound(identifier)

        if house.bird_age_days is None:
            logger.debug(
                "House has no recorded bird age, using default",
                extra={"house_id": str(house.id), "default_age": self._default_age},
            )
            house = house.model_copy(update={"bird_age_days": self._default_age})
        return house
