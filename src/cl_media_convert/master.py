"""Master module - route aggregator and service wiring for FastAPI."""

from importlib.metadata import entry_points
from typing import Callable, Protocol, cast

from fastapi import APIRouter

from .common.file_storage_impl import LocalFileStorage
from .common.media_storage import MediaStorage
from .common.record_sink_impl import JsonlConversionRecordSink
from .config import ConverterConfig, get_config
from .runner import JobRunner
from .routes import UserLike
from .utils.mqtt import get_broadcaster


class RouteFactory(Protocol):
    def __call__(
        self,
        runner: JobRunner,
        storage: MediaStorage,
        get_current_user: Callable[[], UserLike | None],
        *,
        download_grace_seconds: float = ...,
    ) -> APIRouter: ...


def create_runner(config: ConverterConfig | None = None) -> JobRunner:
    """Build a JobRunner with local storage, the configured sink and broadcaster."""
    config = config or get_config()
    storage = LocalFileStorage(config.storage_dir)
    sink = JsonlConversionRecordSink(config.records_file) if config.records_file else None
    return JobRunner(
        storage,
        sink=sink,
        broadcaster=get_broadcaster(config.mqtt_url),
        topic_prefix=config.topic_prefix,
        max_files=config.max_files_per_batch,
    )


def create_master_router(
    runner: JobRunner,
    get_current_user: Callable[[], UserLike | None],
    config: ConverterConfig | None = None,
) -> APIRouter:
    """Aggregate all conversion routes from entry points.

    Discovers routes from [project.entry-points."cl_media_convert.routes"]
    in pyproject.toml and creates a combined router.

    Args:
        runner: JobRunner that also owns the storage used for downloads
        get_current_user: Callable dependency for authentication.
                          Should return user object or None.
        config: Optional config; defaults to the environment

    Returns:
        Combined APIRouter with all conversion routes

    Raises:
        RuntimeError: If a route module fails to load

    Example:
        from fastapi import FastAPI
        from cl_media_convert.master import create_master_router, create_runner

        app = FastAPI()
        runner = create_runner()

        async def get_current_user():
            return None  # Or return user from JWT

        app.include_router(create_master_router(runner, get_current_user), prefix="/api")
    """
    config = config or get_config()
    master = APIRouter()

    eps = entry_points(group="cl_media_convert.routes")

    for ep in eps:
        try:
            create_router = cast(RouteFactory, ep.load())
            router: APIRouter = create_router(
                runner,
                runner.storage,
                get_current_user,
                download_grace_seconds=config.download_grace_seconds,
            )
            master.include_router(router)
        except Exception as e:
            # Route dependency missing = exception (fail fast)
            raise RuntimeError(f"Failed to load routes '{ep.name}': {e}") from e

    return master


def get_available_routes() -> list[str]:
    """Names of the route modules registered as entry points."""
    eps = entry_points(group="cl_media_convert.routes")
    return [ep.name for ep in eps]
