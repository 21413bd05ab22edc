from __future__ import annotations

"""Publishes the control-plane schema as YAML at ``/public/openapi.yaml``."""

from datetime import datetime, timezone

import yaml
from fastapi import FastAPI, Response, Request

__all__ = ["install_openapi_route"]


def install_openapi_route(public_app: FastAPI, source_app: FastAPI | None = None) -> None:
    """Serve ``source_app``'s schema (default: ``public_app``) as YAML on ``public_app``.

    The private app disables its JSON schema in production, so the dashboard
    team reads the YAML copy instead. Cached publicly for 5 minutes.
    """
    schema_app = source_app or public_app

    @public_app.get("/openapi.yaml", include_in_schema=False)
    async def _openapi_yaml(_: Request) -> Response:
        spec = schema_app.openapi()
        body = f"# generated: {datetime.now(timezone.utc).date().isoformat()}\n"
        body += yaml.safe_dump(spec, sort_keys=False)
        return Response(
            content=body,
            media_type="application/x-yaml",
            headers={"Cache-Control": "public, max-age=300"},
        )
