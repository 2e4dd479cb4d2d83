"""List update boundary: applies definitions and keeps the caches in step."""

import json
import logging
from typing import Any, Union

from warninglist.list_cache import WarninglistCache
from warninglist.models import ApplyOutcome, ListDefinition
from warninglist.store import ListStore

logger = logging.getLogger("warninglist.updates")


class WarninglistUpdater:
    """Applies list mutations to the store, then regenerates the list caches."""

    def __init__(self, store: ListStore, list_cache: WarninglistCache):
        self.store = store
        self.list_cache = list_cache

    async def apply(
        self, definition: Union[ListDefinition, dict[str, Any]], regenerate: bool = True
    ) -> ApplyOutcome:
        """
        Store a list definition if it is valid and newer than the stored version.

        Args:
            definition: Parsed definition, or a list document dict
            regenerate: Regenerate the caches for the list after storing it

        Returns:
            Outcome with the list id, validation errors or the skipped flag
        """
        if isinstance(definition, dict):
            definition = ListDefinition.from_dict(definition)

        errors = definition.validate()
        if errors:
            logger.warning(f"Rejected warninglist {definition.name!r}: {'; '.join(errors)}")
            return ApplyOutcome(errors=errors)

        outcome = await self.store.apply_list_definition(definition)
        if outcome.errors:
            logger.warning(f"Could not store warninglist {definition.name!r}: {outcome.errors}")
            return outcome
        if outcome.skipped:
            logger.debug(
                f"Warninglist {definition.name!r} v{definition.version} "
                f"is not newer than v{outcome.old_version}, skipping"
            )
            return outcome

        logger.info(f"Stored warninglist {definition.name!r} v{definition.version}")
        if regenerate:
            await self.list_cache.regenerate(outcome.list_id)
        return outcome

    async def refresh(self, definitions: list[Union[ListDefinition, dict[str, Any]]]) -> dict:
        """
        Apply a full set of list definitions, then regenerate every cache once.

        Returns:
            {"success": {id: {"name", "new", "old"?}}, "fails": [{"name", "fail"}]}
        """
        updated: dict[str, Any] = {"success": {}, "fails": []}

        for definition in definitions:
            if isinstance(definition, dict):
                definition = ListDefinition.from_dict(definition)
            outcome = await self.apply(definition, regenerate=False)

            if outcome.errors:
                updated["fails"].append(
                    {"name": definition.name, "fail": json.dumps(outcome.errors)}
                )
            elif outcome.applied:
                entry = {"name": definition.name, "new": definition.parsed_version()}
                if outcome.old_version is not None:
                    entry["old"] = outcome.old_version
                updated["success"][outcome.list_id] = entry

        await self.list_cache.regenerate()
        logger.info(
            f"Warninglist refresh: {len(updated['success'])} updated, "
            f"{len(updated['fails'])} failed"
        )
        return updated

    async def enable(self, list_id: int) -> bool:
        return await self._set_enabled(list_id, True)

    async def disable(self, list_id: int) -> bool:
        return await self._set_enabled(list_id, False)

    async def _set_enabled(self, list_id: int, enabled: bool) -> bool:
        if not await self.store.set_enabled(list_id, enabled):
            return False
        await self.list_cache.regenerate(list_id)
        return True

    async def delete(self, list_id: int) -> bool:
        """Remove a list and regenerate every cache."""
        if not await self.store.delete(list_id):
            return False
        await self.list_cache.regenerate()
        return True
