"""Service catalog with durations, prices, and name resolution."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from booking_engine.config import settings
from booking_engine.exceptions import ServiceNotFound, ValidationError
from booking_engine.schemas.booking_schema import Service
from booking_engine.utils import normalize_text

logger = logging.getLogger(__name__)

DEFAULT_SERVICES: list[dict] = [
    {"id": "corte-feminino", "name": "Corte Feminino", "duration": 60, "price": 90.0},
    {"id": "corte-masculino", "name": "Corte Masculino", "duration": 30, "price": 50.0},
    {"id": "escova", "name": "Escova", "duration": 45, "price": 60.0},
    {"id": "hidratacao", "name": "Hidratação", "duration": 60, "price": 80.0},
    {"id": "coloracao", "name": "Coloração", "duration": 120, "price": 180.0},
    {"id": "mechas", "name": "Mechas", "duration": 180, "price": 350.0},
    {"id": "manicure", "name": "Manicure", "duration": 45, "price": 35.0},
    {"id": "pedicure", "name": "Pedicure", "duration": 60, "price": 45.0},
    {"id": "sobrancelha", "name": "Design de Sobrancelha", "duration": 30, "price": 40.0},
]

# Keyed by a normalized fragment of the service name.
SERVICE_SYNONYMS: dict[str, list[str]] = {
    "manicure": ["unha", "unhas", "nails"],
    "pedicure": ["pe", "pes", "feet"],
    "sobrancelha": ["sobrancelhas", "eyebrow", "eyebrows", "brows"],
    "coloracao": ["tintura", "pintar", "color", "dye"],
    "corte": ["cortar", "haircut", "cut"],
    "hidratacao": ["hidratar", "treatment"],
    "escova": ["blowout", "blow dry"],
    "mechas": ["luzes", "highlights"],
}

MIN_MATCH_SCORE = 2


class ResolutionKind(str, Enum):
    EXACT = "exact_match"
    FUZZY = "fuzzy_match"
    DEFAULT_ASSUMED = "default_assumed"


@dataclass(frozen=True)
class ServiceResolution:
    """Outcome of resolving a stored service reference to a duration."""

    kind: ResolutionKind
    duration: int
    service: Optional[Service] = None


class ServiceCatalog:
    """In-memory service catalog."""

    def __init__(self, services: Optional[Iterable[Service]] = None) -> None:
        if services is None:
            services = [Service(**data) for data in DEFAULT_SERVICES]
        self._services: dict[str, Service] = {s.id: s for s in services}

    def all(self) -> list[Service]:
        return list(self._services.values())

    def get(self, service_id: str) -> Optional[Service]:
        return self._services.get(service_id)

    def require(self, service_id: Optional[str]) -> Service:
        """Return the service or raise ``ServiceNotFound``."""
        if not service_id:
            raise ValidationError("A service is required.")
        service = self._services.get(service_id)
        if service is None:
            raise ServiceNotFound(f"Service '{service_id}' does not exist.")
        return service

    def upsert(self, service: Service) -> Service:
        """Administrative add/update of a catalog entry."""
        self._services[service.id] = service
        logger.info("Service saved: %s (%d min)", service.id, service.duration)
        return service

    def resolve(
        self, service_id: Optional[str] = None, service_name: Optional[str] = None
    ) -> ServiceResolution:
        """Resolve a booking's service reference: by id, then by name, then default.

        The name fallback compares the first comma-separated token of the
        stored name against catalog names, ignoring accents and case.
        """
        if service_id and service_id in self._services:
            service = self._services[service_id]
            return ServiceResolution(ResolutionKind.EXACT, service.duration, service)

        token = normalize_text((service_name or "").split(",")[0])
        if len(token) >= 3:
            candidates = []
            for service in self._services.values():
                name = normalize_text(service.name)
                if name in token or token in name:
                    candidates.append((len(name), service))
            if candidates:
                _, service = max(candidates, key=lambda c: c[0])
                return ServiceResolution(ResolutionKind.FUZZY, service.duration, service)

        duration = settings.schedule.default_service_duration
        logger.warning(
            "Service not resolved (id=%r, name=%r); assuming %d minutes",
            service_id, service_name, duration,
        )
        return ServiceResolution(ResolutionKind.DEFAULT_ASSUMED, duration)

    def match(self, query: str) -> Optional[Service]:
        """Match free text to a single service. Returns None if absent or ambiguous."""
        text = normalize_text(query)
        if not text:
            return None
        words = set(text.split(" "))

        scored: list[tuple[int, Service]] = []
        for service in self._services.values():
            name = normalize_text(service.name)
            score = 0
            if name in text:
                score += 3
            for word in name.split(" "):
                if len(word) > 2 and word in words:
                    score += 2
            for key, synonyms in SERVICE_SYNONYMS.items():
                if key in name:
                    score += 2 * sum(1 for syn in synonyms if syn in words or (" " in syn and syn in text))
            scored.append((score, service))

        scored.sort(key=lambda item: item[0], reverse=True)
        if not scored or scored[0][0] < MIN_MATCH_SCORE:
            return None
        if len(scored) > 1 and scored[0][0] == scored[1][0]:
            logger.debug("Ambiguous service match for %r", query)
            return None
        return scored[0][1]
