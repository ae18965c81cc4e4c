"""Peer identity inspection endpoints.

Implements:
- GET /peer/headers - X-Peer-* headers as seen by the application
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from peer_cert_headers.projection.headers import HEADER_PREFIX

router = APIRouter(prefix="/peer")


@router.get("/headers")
async def get_peer_headers(request: Request) -> dict[str, str]:
    """Return the peer certificate headers attached to this request.

    Header names are returned lower-cased, as received by the application.
    """
    prefix = HEADER_PREFIX.lower()
    return {name: value for name, value in request.headers.items() if name.startswith(prefix)}
