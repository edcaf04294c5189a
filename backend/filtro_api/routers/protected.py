from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from filtro_api.auth import Principal, RequireAuth

router = APIRouter()


@router.get("/data")
async def read_data(principal: Principal = Depends(RequireAuth(scopes=["read"], permissions=True))):
    return {
        "message": "secure read data",
        "at": datetime.now(timezone.utc).isoformat(),
        "client": principal.subject,
    }


@router.post("/data")
async def write_data(principal: Principal = Depends(RequireAuth(scopes=["write"], permissions=True))):
    return {
        "message": "secure write accepted",
        "at": datetime.now(timezone.utc).isoformat(),
        "client": principal.subject,
    }
