import logging
import threading
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from app.config import Settings, get_settings
from app.repository import AttemptRepository
from app.services import GradingService, OutlineGenerator, build_openai_client

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    grader: GradingService
    outline_generator: OutlineGenerator
    repository: AttemptRepository


_container: ServiceContainer | None = None
_container_lock = threading.Lock()


def build_services(settings: Settings) -> ServiceContainer:
    client = build_openai_client(settings)
    if client is None:
        logger.warning("OPENAI_API_KEY not set; grading and outline generation are unavailable")

    repository = AttemptRepository()
    if settings.database_url:
        try:
            repository = AttemptRepository.from_url(settings.database_url)
        except SQLAlchemyError:
            logger.exception("Could not initialize attempt storage; storage is unavailable")
    else:
        logger.warning("DATABASE_URL not set; attempt storage is unavailable")

    return ServiceContainer(
        settings=settings,
        grader=GradingService(client, model=settings.grading_model),
        outline_generator=OutlineGenerator(client, model=settings.outline_model),
        repository=repository,
    )


def init_services(settings: Settings | None = None, *, force: bool = False) -> ServiceContainer:
    """Build the process-wide services once; later calls return the same container."""
    global _container
    with _container_lock:
        if _container is not None and not force:
            return _container
        _container = build_services(settings or get_settings())
        logger.info(
            "Services initialized (grading=%s, storage=%s)",
            _container.grader.available,
            _container.repository.available,
        )
        return _container
