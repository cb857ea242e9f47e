"""Template catalog CRUD routes backed by the Supabase ``templates`` table."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from api.dependencies import AuthContext, get_auth_context
from api.models.template_models import Template, TemplateCreate
from services.services.template_service import (
    TEMPLATES_TABLE,
    TemplateCatalogError,
    TemplateCatalogService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/templates", tags=["Templates"])


class ErrorResponse(BaseModel):
    code: str
    message: str


class DeleteResponse(BaseModel):
    message: str


def get_template_service() -> TemplateCatalogService[Template]:
    """Create a TemplateCatalogService bound to the templates table."""
    try:
        return TemplateCatalogService(TEMPLATES_TABLE, Template)
    except TemplateCatalogError as exc:
        logger.error(f"Failed to initialize template service: {exc}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "service_unavailable", "message": str(exc)},
        )


def upstream_error(exc: TemplateCatalogError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"code": "upstream_error", "message": str(exc)},
    )


def not_found(kind: str, item_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"code": "not_found", "message": f"{kind} {item_id} not found"},
    )


@router.get("", response_model=List[Template])
def list_templates(
    service: TemplateCatalogService[Template] = Depends(get_template_service),
) -> List[Template]:
    try:
        return service.list_items()
    except TemplateCatalogError as exc:
        raise upstream_error(exc)


@router.post(
    "",
    response_model=Template,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
def create_template(
    payload: TemplateCreate,
    auth: AuthContext = Depends(get_auth_context),
    service: TemplateCatalogService[Template] = Depends(get_template_service),
) -> Template:
    try:
        service.apply_access_token(auth.access_token)
        return service.create_item(payload)
    except TemplateCatalogError as exc:
        raise upstream_error(exc)


@router.put(
    "/{template_id}",
    response_model=Template,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
def update_template(
    template_id: int,
    payload: TemplateCreate,
    auth: AuthContext = Depends(get_auth_context),
    service: TemplateCatalogService[Template] = Depends(get_template_service),
) -> Template:
    try:
        service.apply_access_token(auth.access_token)
        updated = service.update_item(template_id, payload)
    except TemplateCatalogError as exc:
        raise upstream_error(exc)
    if updated is None:
        raise not_found("Template", template_id)
    return updated


@router.delete(
    "/{template_id}",
    response_model=DeleteResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
def delete_template(
    template_id: int,
    auth: AuthContext = Depends(get_auth_context),
    service: TemplateCatalogService[Template] = Depends(get_template_service),
) -> DeleteResponse:
    try:
        service.apply_access_token(auth.access_token)
        deleted = service.delete_item(template_id)
    except TemplateCatalogError as exc:
        raise upstream_error(exc)
    if not deleted:
        raise not_found("Template", template_id)
    return DeleteResponse(message="Deleted Successfully")
