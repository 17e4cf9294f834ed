from fastapi import APIRouter, Depends
from typing import List
from coursehub.core.auth import get_store, require_authenticated
from coursehub.models.schemas import CertificateOut
from coursehub.policy.store import PolicyStore
from coursehub.services.certificates import list_certificates

router = APIRouter()

@router.get("/certificates/mine", response_model=List[CertificateOut], dependencies=[Depends(require_authenticated)])
def my_certificates(store: PolicyStore = Depends(get_store)):
    return list_certificates(store)
