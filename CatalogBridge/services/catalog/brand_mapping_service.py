"""
Brand mapping resolver.

Suppliers spell brands their own way ("ACME Corp.", "acme-corp", "Acme (Corp)").
The resolver maps such vendor names onto catalog brands, first through the
confirmed synonym table and then through normalized brand name matching.
Exact brand matches are learned as synonyms so the next lookup is a mapping hit.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import Session

from CatalogBridge.exceptions import BrandNotFoundError, ResourceNotFoundError, SupplierNotFoundError, ValidationError
from CatalogBridge.repositories.brand_mapping_repository import BrandMappingRepository, BrandRepository
from CatalogBridge.repositories.supplier_repository import SupplierRepository
from CatalogBridge.services.base_service import BaseService, ServiceResponse

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 10

_PARENTHESES = re.compile(r"[()]")
_SEPARATORS = re.compile(r"[\s\-_.]+")


def normalize_brand_name(name: Optional[str]) -> str:
    """
    Canonical form used to compare brand names.

    Parentheses are dropped, runs of whitespace, dashes, underscores and dots
    become one space, and the result is trimmed and lowercased.
    normalize_brand_name(normalize_brand_name(x)) == normalize_brand_name(x).
    """
    if not name:
        return ""
    value = _PARENTHESES.sub("", name)
    value = _SEPARATORS.sub(" ", value)
    return value.strip().lower()


@dataclass
class BrandSuggestion:
    brand_id: str
    brand_name: str
    via: str  # "mapping" or "brand"

    def to_dict(self) -> Dict[str, str]:
        return {"brand_id": self.brand_id, "brand_name": self.brand_name, "via": self.via}


@dataclass
class BrandSuggestions:
    query: str
    normalized_query: str
    suggestions: List[BrandSuggestion] = field(default_factory=list)

    @property
    def best(self) -> Optional[BrandSuggestion]:
        return self.suggestions[0] if self.suggestions else None

    def __len__(self) -> int:
        return len(self.suggestions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "normalized_query": self.normalized_query,
            "suggestions": [s.to_dict() for s in self.suggestions],
        }


class BrandMappingService(BaseService):
    """Suggests, confirms and resolves supplier brand synonyms"""

    def __init__(self, engine_override=None):
        super().__init__(engine_override)
        self.brand_repo = BrandRepository()
        self.mapping_repo = BrandMappingRepository()
        self.supplier_repo = SupplierRepository()

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    async def suggest(self, company_id: str, supplier_id: str, external_brand_name: str) -> BrandSuggestions:
        async with self.get_async_session() as session:
            return self.suggest_in_session(session, company_id, supplier_id, external_brand_name)

    def suggest_in_session(self, session: Session, company_id: str, supplier_id: str,
                           external_brand_name: str) -> BrandSuggestions:
        normalized = normalize_brand_name(external_brand_name)
        result = BrandSuggestions(query=external_brand_name or "", normalized_query=normalized)
        if not normalized:
            return result

        result.suggestions = self._mapping_suggestions(session, company_id, supplier_id, normalized)
        if not result.suggestions:
            result.suggestions = self._brand_suggestions(session, company_id, normalized)
        return result

    def _mapping_suggestions(self, session: Session, company_id: str, supplier_id: str,
                             normalized: str) -> List[BrandSuggestion]:
        suggestions: List[BrandSuggestion] = []
        seen = set()
        for mapping in self.mapping_repo.list_for_supplier(session, company_id, supplier_id, active_only=True):
            if mapping.brand_id in seen:
                continue
            if normalize_brand_name(mapping.external_brand_name) != normalized:
                continue
            brand = self.brand_repo.get_for_company(session, company_id, mapping.brand_id)
            if not brand or not brand.is_active:
                continue
            seen.add(brand.id)
            suggestions.append(BrandSuggestion(brand_id=brand.id, brand_name=brand.name, via="mapping"))
        suggestions.sort(key=lambda s: s.brand_name.lower())
        return suggestions[:MAX_SUGGESTIONS]

    def _brand_suggestions(self, session: Session, company_id: str, normalized: str) -> List[BrandSuggestion]:
        exact, partial = [], []
        for brand in self.brand_repo.list_active(session, company_id):
            brand_normalized = normalize_brand_name(brand.name)
            if brand_normalized == normalized:
                exact.append(brand)
            elif normalized in brand_normalized:
                partial.append(brand)

        by_name = lambda b: (b.name.lower(), b.id)
        ranked = sorted(exact, key=by_name) + sorted(partial, key=by_name)
        return [
            BrandSuggestion(brand_id=brand.id, brand_name=brand.name, via="brand")
            for brand in ranked[:MAX_SUGGESTIONS]
        ]

    # ------------------------------------------------------------------
    # Synonyms
    # ------------------------------------------------------------------

    async def add_synonym(self, company_id: str, supplier_id: str, brand_id: str, external_brand_name: str,
                          settings: Optional[Dict[str, Any]] = None,
                          sync_enabled: Optional[bool] = None) -> Dict[str, Any]:
        """
        Confirm that a supplier's brand name means one catalog brand.

        Repeating the call is idempotent. A previously deactivated synonym is
        reactivated. Other active synonyms of the same supplier that normalize
        to the same name but point at a different brand are deactivated.
        """
        async with self.get_async_session() as session:
            mapping = self.add_synonym_in_session(
                session, company_id, supplier_id, brand_id, external_brand_name, settings, sync_enabled
            )
            return mapping.model_dump()

    def add_synonym_in_session(self, session: Session, company_id: str, supplier_id: str, brand_id: str,
                               external_brand_name: str, settings: Optional[Dict[str, Any]] = None,
                               sync_enabled: Optional[bool] = None):
        name = (external_brand_name or "").strip()
        if not normalize_brand_name(name):
            raise ValidationError("External brand name is required", missing_fields=["external_brand_name"])

        if not self.supplier_repo.get_for_company(session, company_id, supplier_id, active_only=False):
            raise SupplierNotFoundError(f"Supplier {supplier_id} not found", supplier_id=supplier_id)
        if not self.brand_repo.get_for_company(session, company_id, brand_id):
            raise BrandNotFoundError(f"Brand {brand_id} not found", brand_id=brand_id)

        existing = self.mapping_repo.find(session, company_id, supplier_id, brand_id, name)
        merged_settings = dict(existing.mapping_settings or {}) if existing else {}
        merged_settings.update({k: v for k, v in (settings or {}).items() if v is not None})

        mapping = self.mapping_repo.upsert(
            session, company_id, supplier_id, brand_id, name, merged_settings, sync_enabled
        )

        normalized = normalize_brand_name(name)
        now = datetime.utcnow()
        for other in self.mapping_repo.list_for_supplier(session, company_id, supplier_id, active_only=True):
            if other.id == mapping.id or other.brand_id == brand_id:
                continue
            if normalize_brand_name(other.external_brand_name) == normalized:
                other.is_active = False
                other.updated_at = now
                session.add(other)
                self.logger.info(
                    f"Deactivated brand synonym '{other.external_brand_name}' -> {other.brand_id} "
                    f"in favour of brand {brand_id}"
                )
        session.flush()

        self.logger.info(f"Brand synonym '{name}' -> {brand_id} confirmed for supplier {supplier_id}")
        return mapping

    async def deactivate_synonym(self, mapping_id: str) -> ServiceResponse[Dict[str, Any]]:
        try:
            self.log_operation("deactivate", "brand synonym", mapping_id)
            async with self.get_async_session() as session:
                mapping = self.mapping_repo.get_by_id(session, mapping_id)
                if not mapping:
                    raise ResourceNotFoundError(
                        f"Brand synonym not found with ID: {mapping_id}",
                        resource_type="brand_supplier_mapping",
                        resource_id=mapping_id,
                    )
                mapping.is_active = False
                mapping.updated_at = datetime.utcnow()
                mapping = self.mapping_repo.update(session, mapping)
                return self.success_response("Brand synonym deactivated", mapping.model_dump())
        except Exception as e:
            return self.handle_exception(e, "deactivate brand synonym")

    async def list_mappings(self, company_id: str, supplier_id: str) -> ServiceResponse[List[Dict[str, Any]]]:
        try:
            async with self.get_async_session() as session:
                mappings = self.mapping_repo.list_for_supplier(session, company_id, supplier_id)
                data = [mapping.model_dump() for mapping in mappings]
                return self.success_response(f"Found {len(data)} brand synonyms", data)
        except Exception as e:
            return self.handle_exception(e, "list brand synonyms")

    # ------------------------------------------------------------------
    # Import-time resolution
    # ------------------------------------------------------------------

    def resolve_brand_id(self, session: Session, company_id: str, supplier_id: str,
                         external_brand_name: Optional[str]) -> Optional[str]:
        """
        Resolve a supplier brand name inside the caller's transaction.

        Only a confirmed synonym or an exact normalized brand name match is
        applied; an exact match is learned as a new synonym. Substring-only
        matches are left for a human to confirm.
        """
        normalized = normalize_brand_name(external_brand_name)
        if not normalized:
            return None

        best = self.suggest_in_session(session, company_id, supplier_id, external_brand_name).best
        if best is None:
            return None
        if best.via == "mapping":
            return best.brand_id
        if normalize_brand_name(best.brand_name) == normalized:
            self.add_synonym_in_session(session, company_id, supplier_id, best.brand_id, external_brand_name)
            return best.brand_id

        logger.debug(f"Brand '{external_brand_name}' only matched partially, leaving unresolved")
        return None
