"""Command line entry-point to start the ETL of an uploaded batch without the API."""

from __future__ import annotations

import argparse
import json
import logging
import uuid
from typing import Optional

from ..database import session_scope
from ..services.errors import ComptableError
from ..services.etl_dispatch import UnconfiguredJobDispatcher, build_job_dispatcher_from_env
from ..services.etl_trigger import EtlTriggerService
from ..services.storage import build_object_store_from_env

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Déclenche le traitement ETL d'un lot de fichiers comptables."
    )
    parser.add_argument("batch_id", type=uuid.UUID, help="Identifiant du lot (UUID).")
    parser.add_argument(
        "--organization-id",
        type=uuid.UUID,
        required=True,
        help="Organisation propriétaire du client du lot.",
    )
    parser.add_argument(
        "--performed-by",
        default="cli",
        help="Nom enregistré dans l'historique des fichiers (default: cli).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help=(
            "Vérifie le lot et affiche la requête sans appeler l'orchestrateur "
            "ni modifier la base."
        ),
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Affiche des informations supplémentaires pour le débogage.",
    )
    return parser.parse_args(argv)


def _preview(args: argparse.Namespace, bucket_name: str) -> int:
    with session_scope() as session:
        request = EtlTriggerService(
            session, UnconfiguredJobDispatcher("dry run"), bucket_name=bucket_name
        ).preview(
            args.batch_id, organization_id=args.organization_id
        )
    LOGGER.info("Dry run: batch %s would be dispatched to %s", args.batch_id, request.s3_prefix)
    print(json.dumps(request.as_conf()))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    bucket_name = build_object_store_from_env().bucket_name

    if args.dry_run:
        try:
            return _preview(args, bucket_name)
        except ComptableError as exc:
            LOGGER.error("%s (%s)", exc.message, exc.kind)
            return 1

    dispatcher = build_job_dispatcher_from_env()
    try:
        with session_scope() as session:
            result = EtlTriggerService(session, dispatcher, bucket_name=bucket_name).trigger(
                args.batch_id,
                organization_id=args.organization_id,
                performed_by=args.performed_by,
            )
            LOGGER.info(
                "Batch %s is PROCESSING under run %s (%s)",
                args.batch_id,
                result.dag_run_id,
                result.storage_prefix,
            )
    except ComptableError as exc:
        LOGGER.error("%s (%s)", exc.message, exc.kind)
        return 1
    finally:
        dispatcher.close()

    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
