"""
Integration Credential Service

Stores supplier and marketplace API configuration as credential envelopes and
hands decrypted configuration to adapters. Plaintext JSON configs written
before encryption was enabled are still readable; every save re-encrypts, which
is also how credentials are rotated.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from CatalogBridge.adapters import ConnectionTestResult, create_adapter
from CatalogBridge.config import get_settings
from CatalogBridge.exceptions import (
    AdapterError,
    ConfigurationError,
    MarketplaceNotFoundError,
    SupplierNotFoundError,
    ValidationError,
)
from CatalogBridge.repositories.supplier_repository import MarketplaceRepository, SupplierRepository
from CatalogBridge.services.base_service import BaseService
from CatalogBridge.services.security.credential_cipher import CredentialCipher

logger = logging.getLogger(__name__)


def decode_api_config(cipher: CredentialCipher, raw: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    """
    Turn a stored api_config into a plain dict.

    Envelopes are decrypted and a decryption failure propagates. Plaintext JSON
    is parsed, dicts pass through and an empty value yields {}.
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)

    if cipher.is_encrypted(raw):
        value = cipher.decrypt(raw)
    else:
        try:
            value = json.loads(raw)
        except ValueError:
            raise ConfigurationError("Stored API configuration is neither encrypted nor valid JSON",
                                     config_field="api_config")

    if not isinstance(value, dict):
        raise ConfigurationError("Stored API configuration must be an object", config_field="api_config")
    return value


def build_adapter_config(cipher: CredentialCipher, raw: Union[str, Dict[str, Any], None],
                         default_warehouse_id: Optional[str] = None) -> Dict[str, Any]:
    """Decoded config plus deployment defaults the adapter expects"""
    config = decode_api_config(cipher, raw)
    config.setdefault("timeout", get_settings().adapter_http_timeout)
    if default_warehouse_id:
        config.setdefault("warehouse_id", default_warehouse_id)
    return config


class IntegrationCredentialService(BaseService):
    """Encrypted storage and connection checks for supplier and marketplace credentials"""

    def __init__(self, cipher: CredentialCipher, adapter_factory=create_adapter, engine_override=None):
        super().__init__(engine_override)
        self.cipher = cipher
        self.adapter_factory = adapter_factory
        self.supplier_repo = SupplierRepository()
        self.marketplace_repo = MarketplaceRepository()

    # ========== Suppliers ==========

    async def save_supplier_config(self, company_id: str, supplier_id: str, config: Dict[str, Any]) -> None:
        if not isinstance(config, dict):
            raise ValidationError("API configuration must be an object", field_errors={"config": "expected object"})

        async with self.get_async_session() as session:
            supplier = self.supplier_repo.get_for_company(session, company_id, supplier_id, active_only=False)
            if not supplier:
                raise SupplierNotFoundError(f"Supplier {supplier_id} not found", supplier_id=supplier_id)

            supplier.api_config = self.cipher.encrypt(config)
            supplier.updated_at = datetime.utcnow()
            self.supplier_repo.update(session, supplier)
            # Key names only; values are secrets
            self.logger.info(f"Stored encrypted config for supplier {supplier_id} (keys: {sorted(config)})")

    async def get_supplier_config(self, company_id: str, supplier_id: str) -> Dict[str, Any]:
        async with self.get_async_session() as session:
            supplier = self.supplier_repo.get_for_company(session, company_id, supplier_id, active_only=False)
            if not supplier:
                raise SupplierNotFoundError(f"Supplier {supplier_id} not found", supplier_id=supplier_id)
            return decode_api_config(self.cipher, supplier.api_config)

    async def test_supplier_connection(self, company_id: str, supplier_id: str) -> ConnectionTestResult:
        async with self.get_async_session() as session:
            supplier = self.supplier_repo.get_for_company(session, company_id, supplier_id, active_only=False)
            if not supplier:
                raise SupplierNotFoundError(f"Supplier {supplier_id} not found", supplier_id=supplier_id)

            config = build_adapter_config(self.cipher, supplier.api_config, supplier.default_warehouse_id)
            result = await self._run_connection_test(supplier.api_type, config)

            supplier.last_tested_at = datetime.utcnow()
            supplier.test_status = "success" if result.success else "failed"
            self.supplier_repo.update(session, supplier)
            return result

    # ========== Marketplaces ==========

    async def save_marketplace_config(self, company_id: str, marketplace_id: str, config: Dict[str, Any]) -> None:
        if not isinstance(config, dict):
            raise ValidationError("API configuration must be an object", field_errors={"config": "expected object"})

        async with self.get_async_session() as session:
            marketplace = self.marketplace_repo.get_for_company(session, company_id, marketplace_id, active_only=False)
            if not marketplace:
                raise MarketplaceNotFoundError(f"Marketplace {marketplace_id} not found", marketplace_id=marketplace_id)

            marketplace.api_config = self.cipher.encrypt(config)
            marketplace.updated_at = datetime.utcnow()
            self.marketplace_repo.update(session, marketplace)
            self.logger.info(f"Stored encrypted config for marketplace {marketplace_id} (keys: {sorted(config)})")

    async def get_marketplace_config(self, company_id: str, marketplace_id: str) -> Dict[str, Any]:
        async with self.get_async_session() as session:
            marketplace = self.marketplace_repo.get_for_company(session, company_id, marketplace_id, active_only=False)
            if not marketplace:
                raise MarketplaceNotFoundError(f"Marketplace {marketplace_id} not found", marketplace_id=marketplace_id)
            return decode_api_config(self.cipher, marketplace.api_config)

    async def test_marketplace_connection(self, company_id: str, marketplace_id: str) -> ConnectionTestResult:
        async with self.get_async_session() as session:
            marketplace = self.marketplace_repo.get_for_company(session, company_id, marketplace_id, active_only=False)
            if not marketplace:
                raise MarketplaceNotFoundError(f"Marketplace {marketplace_id} not found", marketplace_id=marketplace_id)

            config = build_adapter_config(self.cipher, marketplace.api_config)
            result = await self._run_connection_test(marketplace.api_type, config)

            marketplace.last_tested_at = datetime.utcnow()
            marketplace.test_status = "success" if result.success else "failed"
            self.marketplace_repo.update(session, marketplace)
            return result

    async def _run_connection_test(self, api_type: str, config: Dict[str, Any]) -> ConnectionTestResult:
        """Build a fresh adapter and run its connection test; configuration errors are reported, not raised"""
        try:
            adapter = self.adapter_factory(api_type, config)
        except AdapterError as e:
            self.logger.warning(f"Cannot build {api_type} adapter: {e.message}")
            return ConnectionTestResult(success=False, message=e.message, details=e.details)

        try:
            return await adapter.test_connection()
        except AdapterError as e:
            return ConnectionTestResult(success=False, message=e.message, details=e.details)
        finally:
            await adapter.close()
