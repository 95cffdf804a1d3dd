"""
Rules Client
============

CRUD wrapper over the stream rules endpoint.

Wire format:
    GET  {url}                     -> {"rules": [{"value": ..., "tag": ...}]}
    POST {url}                     <- {"rules": [...]}   add
    POST {url}?_method=delete      <- {"rules": [...]}   remove
"""

import logging
from typing import Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from gnip_stream.api.base import ApiClient


logger = logging.getLogger(__name__)


class Rule(BaseModel):
    """A stream filter rule."""

    value: str = Field(..., min_length=1, description="Rule expression")
    tag: Optional[str] = Field(default=None, description="Free-form tag returned with matches")
    id: Optional[int] = Field(default=None, description="Server-assigned id")

    def to_payload(self) -> dict:
        payload = {"value": self.value}
        if self.tag is not None:
            payload["tag"] = self.tag
        return payload


RuleLike = Union[Rule, str, dict]


def _coerce(rules: Iterable[RuleLike]) -> List[Rule]:
    coerced = []
    for rule in rules:
        if isinstance(rule, Rule):
            coerced.append(rule)
        elif isinstance(rule, str):
            coerced.append(Rule(value=rule))
        else:
            coerced.append(Rule.model_validate(rule))
    return coerced


class RulesClient(ApiClient):
    """Rules API client."""

    async def get_all(self) -> List[Rule]:
        """Fetch every active rule."""
        body = await self._request("GET") or {}
        return [Rule.model_validate(rule) for rule in body.get("rules", ())]

    async def add(self, rules: Iterable[RuleLike]) -> Optional[dict]:
        """Add rules. Strings are treated as untagged rule values."""
        payload = [rule.to_payload() for rule in _coerce(rules)]
        if not payload:
            return None
        logger.info(f"Adding {len(payload)} rule(s)")
        return await self._request("POST", json={"rules": payload})

    async def remove(self, rules: Iterable[RuleLike]) -> Optional[dict]:
        """Remove rules by value."""
        payload = [rule.to_payload() for rule in _coerce(rules)]
        if not payload:
            return None
        logger.info(f"Removing {len(payload)} rule(s)")
        return await self._request(
            "POST",
            params={"_method": "delete"},
            json={"rules": payload},
        )

    async def remove_all(self) -> Optional[dict]:
        """Remove every active rule."""
        return await self.remove(await self.get_all())

    async def replace(self, rules: Iterable[RuleLike]) -> Optional[dict]:
        """
        Make `rules` the exact active set.

        Only the difference is sent: missing rules are added, extra rules
        are removed.
        """
        wanted = {rule.value: rule for rule in _coerce(rules)}
        current = {rule.value: rule for rule in await self.get_all()}

        stale = [rule for value, rule in current.items() if value not in wanted]
        fresh = [rule for value, rule in wanted.items() if value not in current]

        if stale:
            await self.remove(stale)
        return await self.add(fresh)
