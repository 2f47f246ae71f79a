from .container import Container, ServiceKey, ServiceRegistration
from .service_registry import ServiceRegistry, ServiceEntry, call_hook

__all__ = [
    "Container",
    "ServiceKey",
    "ServiceRegistration",
    "ServiceRegistry",
    "ServiceEntry",
    "call_hook",
]
