"""
Adapter Registry

Registration table from AdapterType to adapter class, and the factory used to
build a fresh adapter for each request.
"""

from typing import Any, Dict, List, Type, Union

from .base import AdapterInfo, AdapterType, BaseAdapter
from CatalogBridge.exceptions import UnknownAdapterTypeError


class AdapterRegistry:
    """
    Registry for adapter implementations.

    Adapters register themselves with @register_adapter when their module is
    imported (see CatalogBridge.adapters.__init__).
    """

    _adapters: Dict[AdapterType, Type[BaseAdapter]] = {}

    @classmethod
    def register(cls, adapter_type: AdapterType, adapter_class: Type[BaseAdapter]):
        """Register an adapter implementation"""
        if not issubclass(adapter_class, BaseAdapter):
            raise ValueError("Adapter class must inherit from BaseAdapter")

        adapter_class.adapter_type = adapter_type
        cls._adapters[adapter_type] = adapter_class

    @classmethod
    def resolve_type(cls, type_code: Union[str, AdapterType]) -> AdapterType:
        """Map a type code to its AdapterType, case-insensitively"""
        if isinstance(type_code, AdapterType):
            return type_code
        try:
            return AdapterType(str(type_code).strip().lower())
        except ValueError:
            raise UnknownAdapterTypeError(f"Unknown adapter type '{type_code}'", adapter_type=str(type_code))

    @classmethod
    def create(cls, type_code: Union[str, AdapterType], config: Dict[str, Any]) -> BaseAdapter:
        """Create a new adapter bound to the given (decrypted) config"""
        adapter_type = cls.resolve_type(type_code)
        adapter_class = cls._adapters.get(adapter_type)
        if adapter_class is None:
            raise UnknownAdapterTypeError(
                f"No adapter registered for type '{adapter_type.value}'", adapter_type=adapter_type.value
            )
        return adapter_class(config)

    @classmethod
    def available_types(cls) -> List[str]:
        """Get list of all registered adapter type codes"""
        return sorted(adapter_type.value for adapter_type in cls._adapters)

    @classmethod
    def is_available(cls, type_code: Union[str, AdapterType]) -> bool:
        try:
            return cls.resolve_type(type_code) in cls._adapters
        except UnknownAdapterTypeError:
            return False

    @classmethod
    def get_adapter_class(cls, type_code: Union[str, AdapterType]) -> Type[BaseAdapter]:
        adapter_type = cls.resolve_type(type_code)
        if adapter_type not in cls._adapters:
            raise UnknownAdapterTypeError(
                f"No adapter registered for type '{adapter_type.value}'", adapter_type=adapter_type.value
            )
        return cls._adapters[adapter_type]


def register_adapter(adapter_type: AdapterType):
    """Decorator for registering adapters"""

    def decorator(adapter_class: Type[BaseAdapter]):
        AdapterRegistry.register(adapter_type, adapter_class)
        return adapter_class

    return decorator


# Convenience functions for easier access
def create_adapter(type_code: Union[str, AdapterType], config: Dict[str, Any]) -> BaseAdapter:
    """Create a fresh adapter instance; nothing is cached between calls"""
    return AdapterRegistry.create(type_code, config)


def get_available_adapters() -> List[str]:
    return AdapterRegistry.available_types()


def get_adapter_info(type_code: Union[str, AdapterType]) -> AdapterInfo:
    """Static information about an adapter type, without credentials"""
    adapter_class = AdapterRegistry.get_adapter_class(type_code)
    return adapter_class.describe()
