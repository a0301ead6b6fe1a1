"""Named services shared between the app lifespan and the route handlers."""
from __future__ import annotations
from typing import TYPE_CHECKING, Any, Dict, List
from fastapi import HTTPException

if TYPE_CHECKING:
    from perptrader.services.trading_engine import TradingEngine


class ServiceRegistry:
    def __init__(self) -> None:
        self._services: Dict[str, Any] = {}

    def register(self, name: str, service: Any) -> None:
        self._services[name] = service

    def unregister(self, name: str) -> None:
        self._services.pop(name, None)

    def get(self, name: str) -> Any:
        service = self._services.get(name)
        if service is None:
            # lifespan has not finished startup, or already tore the service down
            raise HTTPException(status_code=503, detail=f"Service '{name}' not available")
        return service

    def names(self) -> List[str]:
        return sorted(self._services)

    def all_status(self) -> Dict[str, Dict[str, Any]]:
        report: Dict[str, Dict[str, Any]] = {}
        for name in self.names():
            status_fn = getattr(self._services[name], "status", None)
            if status_fn is None:
                report[name] = {"available": True}
                continue
            try:
                report[name] = status_fn()
            except Exception as e:
                report[name] = {"available": False, "error": str(e)}
        return report


service_registry = ServiceRegistry()


def get_service_registry() -> ServiceRegistry:
    return service_registry


def get_engine() -> "TradingEngine":
    return service_registry.get("engine")


__all__ = ["ServiceRegistry", "service_registry", "get_service_registry", "get_engine"]
