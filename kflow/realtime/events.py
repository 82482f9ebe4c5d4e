"""Change-feed notifications and their canonical decoded form.

A raw notification is whatever the subscription channel delivers:

    {"eventType": "UPDATE", "new": {...}, "old": {...}, "table": "offers"}

The feed sends an empty dict for the side that does not exist, so empty
images are treated as absent.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kflow.customers.enums import ChangeOp, EntityKind
from kflow.observability.logging import get_logger
from kflow.observability.metrics import EVENTS_DROPPED

logger = get_logger(__name__)

# Image each operation cannot do without
_REQUIRED_IMAGE = {
    ChangeOp.INSERT: "new",
    ChangeOp.UPDATE: "new",
    ChangeOp.DELETE: "old",
}


class ChangeEvent(BaseModel):
    """Decoded change notification.

    Images are plain row dicts; absent images are None, never empty dicts.
    """

    model_config = ConfigDict(frozen=True)

    kind: EntityKind = Field(..., description="Which table changed")
    op: ChangeOp = Field(..., description="Row operation")
    new: dict[str, Any] | None = Field(default=None, description="After-image")
    old: dict[str, Any] | None = Field(default=None, description="Before-image")

    @property
    def customer_id(self) -> str | None:
        """Customer the event concerns, if the images name one."""
        key = "id" if self.kind is EntityKind.CUSTOMER else "customer_id"
        for image in (self.new, self.old):
            if image and image.get(key):
                return str(image[key])
        return None


def _image(raw: Mapping[str, Any], key: str) -> dict[str, Any] | None:
    value = raw.get(key)
    if isinstance(value, Mapping) and value:
        return dict(value)
    return None


def _drop(reason: str, **context: Any) -> None:
    EVENTS_DROPPED.labels(reason=reason).inc()
    logger.warning("change_notification_dropped", reason=reason, **context)


def decode_notification(
    raw: Mapping[str, Any], kind: EntityKind | str | None = None
) -> ChangeEvent | None:
    """Normalize a raw notification into a ChangeEvent.

    Only presence checks are made. Anything unusable is logged and dropped.

    Args:
        raw: Notification as delivered by the feed channel
        kind: Entity kind; defaults to the notification's table name

    Returns:
        The decoded event, or None when the notification was dropped
    """
    table = kind if kind is not None else raw.get("table")
    try:
        entity = EntityKind(table)
    except ValueError:
        _drop("unknown_table", table=str(table))
        return None

    event_type = raw.get("eventType") or raw.get("type")
    try:
        op = ChangeOp(str(event_type).upper())
    except ValueError:
        _drop("unknown_operation", table=entity.value, event_type=str(event_type))
        return None

    new = _image(raw, "new")
    old = _image(raw, "old")
    if new is None and old is None:
        _drop("missing_images", table=entity.value, op=op.value)
        return None

    required = _REQUIRED_IMAGE[op]
    if (new if required == "new" else old) is None:
        _drop("missing_required_image", table=entity.value, op=op.value, image=required)
        return None

    return ChangeEvent(kind=entity, op=op, new=new, old=old)
