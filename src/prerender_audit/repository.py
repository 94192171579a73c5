"""
Persistence interface for opportunities and suggestions.

The audit only depends on :class:`OpportunityRepository`. The in-memory and
JSON file implementations back the command line tool and the tests.
"""

import asyncio
import copy
import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


class OpportunityStatus:
    NEW = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    IGNORED = "IGNORED"

    OPEN = (NEW, IN_PROGRESS)


class SuggestionStatus:
    NEW = "NEW"
    FIXED = "FIXED"
    OUTDATED = "OUTDATED"
    SKIPPED = "SKIPPED"
    ERROR = "ERROR"


class SuggestionType:
    CONFIG_UPDATE = "CONFIG_UPDATE"


@dataclass
class Opportunity:
    """A detected category of site issue."""

    site_id: str
    type: str
    audit_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = OpportunityStatus.NEW
    origin: str = "AUTOMATION"
    title: str = ""
    description: str = ""
    runbook: str = ""
    tags: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class Suggestion:
    """A per-URL recommendation owned by an opportunity."""

    opportunity_id: str
    data: dict[str, Any]
    type: str = SuggestionType.CONFIG_UPDATE
    rank: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = SuggestionStatus.NEW


class OpportunityRepository(ABC):
    """Abstract interface for opportunity and suggestion storage."""

    @abstractmethod
    async def all_by_site_id_and_status(self, site_id: str, status: str) -> list[Opportunity]:
        pass

    @abstractmethod
    async def find_opportunity_by_id(self, opportunity_id: str) -> Opportunity | None:
        pass

    @abstractmethod
    async def create_opportunity(self, opportunity: Opportunity) -> Opportunity:
        pass

    @abstractmethod
    async def save_opportunity(self, opportunity: Opportunity) -> Opportunity:
        pass

    @abstractmethod
    async def all_suggestions_by_opportunity_id(self, opportunity_id: str) -> list[Suggestion]:
        pass

    @abstractmethod
    async def create_suggestion(self, suggestion: Suggestion) -> Suggestion:
        pass

    @abstractmethod
    async def save_suggestion(self, suggestion: Suggestion) -> Suggestion:
        pass

    @abstractmethod
    async def remove_suggestion(self, suggestion: Suggestion) -> None:
        pass


class InMemoryRepository(OpportunityRepository):
    """
    Dictionary-backed repository.

    Returns copies so callers cannot change stored records without saving.
    """

    def __init__(self):
        self.opportunities: dict[str, Opportunity] = {}
        self.suggestions: dict[str, Suggestion] = {}

    async def all_by_site_id_and_status(self, site_id: str, status: str) -> list[Opportunity]:
        return [
            copy.deepcopy(o)
            for o in self.opportunities.values()
            if o.site_id == site_id and o.status == status
        ]

    async def find_opportunity_by_id(self, opportunity_id: str) -> Opportunity | None:
        opportunity = self.opportunities.get(opportunity_id)
        return copy.deepcopy(opportunity) if opportunity else None

    async def create_opportunity(self, opportunity: Opportunity) -> Opportunity:
        self.opportunities[opportunity.id] = copy.deepcopy(opportunity)
        await self._persist()
        return opportunity

    async def save_opportunity(self, opportunity: Opportunity) -> Opportunity:
        if opportunity.id not in self.opportunities:
            raise KeyError(f"Opportunity not found: {opportunity.id}")
        self.opportunities[opportunity.id] = copy.deepcopy(opportunity)
        await self._persist()
        return opportunity

    async def all_suggestions_by_opportunity_id(self, opportunity_id: str) -> list[Suggestion]:
        return [
            copy.deepcopy(s)
            for s in self.suggestions.values()
            if s.opportunity_id == opportunity_id
        ]

    async def create_suggestion(self, suggestion: Suggestion) -> Suggestion:
        self.suggestions[suggestion.id] = copy.deepcopy(suggestion)
        await self._persist()
        return suggestion

    async def save_suggestion(self, suggestion: Suggestion) -> Suggestion:
        if suggestion.id not in self.suggestions:
            raise KeyError(f"Suggestion not found: {suggestion.id}")
        self.suggestions[suggestion.id] = copy.deepcopy(suggestion)
        await self._persist()
        return suggestion

    async def remove_suggestion(self, suggestion: Suggestion) -> None:
        self.suggestions.pop(suggestion.id, None)
        await self._persist()

    async def _persist(self) -> None:
        """Hook for subclasses that write records somewhere."""
        pass


class JsonFileRepository(InMemoryRepository):
    """
    Repository persisted to a single JSON file.

    The whole file is loaded on creation and rewritten after every change.
    """

    def __init__(self, path: str):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            for item in raw.get("opportunities", []):
                opportunity = Opportunity(**item)
                self.opportunities[opportunity.id] = opportunity
            for item in raw.get("suggestions", []):
                suggestion = Suggestion(**item)
                self.suggestions[suggestion.id] = suggestion

    async def _persist(self) -> None:
        data = {
            "opportunities": [asdict(o) for o in self.opportunities.values()],
            "suggestions": [asdict(s) for s in self.suggestions.values()],
        }

        def _write():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

        await asyncio.to_thread(_write)
