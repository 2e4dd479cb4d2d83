"""Warninglist annotation for PyMISP events."""

import logging
from typing import Iterator

from pymisp import MISPAttribute, MISPEvent

from warninglist.lookup import WarninglistEngine
from warninglist.models import LookupItem, WarninglistMatch

logger = logging.getLogger("warninglist.misp")


def iter_event_attributes(event: MISPEvent) -> Iterator[MISPAttribute]:
    """Yield the event's attributes followed by the attributes of its objects."""
    yield from event.attributes
    for misp_object in event.objects:
        yield from misp_object.attributes


def to_lookup_item(attribute: MISPAttribute) -> LookupItem:
    return LookupItem(
        type=attribute.type,
        value=str(attribute.value),
        to_ids=bool(getattr(attribute, "to_ids", False)),
    )


async def annotate_event(
    engine: WarninglistEngine, event: MISPEvent
) -> tuple[dict[str, list[WarninglistMatch]], dict[int, str]]:
    """
    Check every attribute of a MISP event against the enabled warninglists.

    Args:
        engine: Configured warninglist engine
        event: The event to annotate

    Returns:
        Tuple of ({attribute uuid: matches} for attributes with at least one
        match, {warninglist id: name} for the whole event)
    """
    attributes = list(iter_event_attributes(event))
    result = await engine.annotate([to_lookup_item(a) for a in attributes])

    warnings: dict[str, list[WarninglistMatch]] = {}
    for attribute, matches in zip(attributes, result.matches):
        if matches:
            warnings[attribute.uuid] = matches

    if result.event_warnings:
        logger.info(
            f"Event {getattr(event, 'uuid', 'unknown')}: {len(warnings)} attribute(s) on "
            f"{len(result.event_warnings)} warninglist(s)"
        )
    return warnings, result.event_warnings
