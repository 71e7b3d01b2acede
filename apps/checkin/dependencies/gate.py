from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from apps.checkin.admission.gate import GateService


async def get_gate_service(request: Request) -> GateService:
    service = getattr(request.app.state, "gate_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Gate service is not configured")
    return service


GateServiceDep = Annotated[GateService, Depends(get_gate_service)]
