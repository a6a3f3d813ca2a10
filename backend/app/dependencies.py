"""Process-wide collaborators injected into the routers."""

from __future__ import annotations

import logging
from functools import lru_cache

from .services.etl_dispatch import JobDispatcher, build_job_dispatcher_from_env
from .services.storage import ObjectStore, build_object_store_from_env

LOGGER = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_object_store() -> ObjectStore:
    return build_object_store_from_env()


@lru_cache(maxsize=1)
def get_job_dispatcher() -> JobDispatcher:
    dispatcher = build_job_dispatcher_from_env()
    LOGGER.info("ETL runs are dispatched through the %s transport", dispatcher.transport)
    return dispatcher


def close_job_dispatcher() -> None:
    """Close the cached dispatcher, if one was created, and forget it."""

    if get_job_dispatcher.cache_info().currsize:
        get_job_dispatcher().close()
    get_job_dispatcher.cache_clear()
