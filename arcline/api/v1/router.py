from fastapi import APIRouter

from arcline.api.v1.auth import router as auth_router
from arcline.api.v1.contacts import router as contacts_router
from arcline.api.v1.documents import router as documents_router
from arcline.api.v1.invoices import router as invoices_router
from arcline.api.v1.notifications import router as notifications_router
from arcline.api.v1.orgs import router as orgs_router
from arcline.api.v1.payments import router as payments_router
from arcline.api.v1.projects import router as projects_router
from arcline.api.v1.proposals import public_router as public_proposals_router
from arcline.api.v1.proposals import router as proposals_router
from arcline.api.v1.signing import router as signing_router

v1_router = APIRouter()

v1_router.include_router(auth_router)
v1_router.include_router(orgs_router)
v1_router.include_router(projects_router)
v1_router.include_router(contacts_router)
v1_router.include_router(invoices_router)
v1_router.include_router(payments_router)
v1_router.include_router(documents_router)
v1_router.include_router(proposals_router)
v1_router.include_router(public_proposals_router)
v1_router.include_router(signing_router)
v1_router.include_router(notifications_router)
