"""Template style CRUD routes backed by the Supabase ``template_styles`` table."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies import AuthContext, get_auth_context
from api.models.template_models import TemplateStyle, TemplateStyleCreate
from api.template_routes import DeleteResponse, ErrorResponse, not_found, upstream_error
from services.services.template_service import (
    TEMPLATE_STYLES_TABLE,
    TemplateCatalogError,
    TemplateCatalogService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/template-styles", tags=["Template Styles"])


def get_template_style_service() -> TemplateCatalogService[TemplateStyle]:
    try:
        return TemplateCatalogService(TEMPLATE_STYLES_TABLE, TemplateStyle)
    except TemplateCatalogError as exc:
        logger.error(f"Failed to initialize template style service: {exc}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "service_unavailable", "message": str(exc)},
        )


@router.get("", response_model=List[TemplateStyle])
def list_template_styles(
    service: TemplateCatalogService[TemplateStyle] = Depends(get_template_style_service),
) -> List[TemplateStyle]:
    try:
        return service.list_items()
    except TemplateCatalogError as exc:
        raise upstream_error(exc)


@router.post(
    "",
    response_model=TemplateStyle,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
def create_template_style(
    payload: TemplateStyleCreate,
    auth: AuthContext = Depends(get_auth_context),
    service: TemplateCatalogService[TemplateStyle] = Depends(get_template_style_service),
) -> TemplateStyle:
    try:
        service.apply_access_token(auth.access_token)
        return service.create_item(payload)
    except TemplateCatalogError as exc:
        raise upstream_error(exc)


@router.put(
    "/{style_id}",
    response_model=TemplateStyle,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
def update_template_style(
    style_id: int,
    payload: TemplateStyleCreate,
    auth: AuthContext = Depends(get_auth_context),
    service: TemplateCatalogService[TemplateStyle] = Depends(get_template_style_service),
) -> TemplateStyle:
    try:
        service.apply_access_token(auth.access_token)
        updated = service.update_item(style_id, payload)
    except TemplateCatalogError as exc:
        raise upstream_error(exc)
    if updated is None:
        raise not_found("Template style", style_id)
    return updated


@router.delete(
    "/{style_id}",
    response_model=DeleteResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
def delete_template_style(
    style_id: int,
    auth: AuthContext = Depends(get_auth_context),
    service: TemplateCatalogService[TemplateStyle] = Depends(get_template_style_service),
) -> DeleteResponse:
    try:
        service.apply_access_token(auth.access_token)
        deleted = service.delete_item(style_id)
    except TemplateCatalogError as exc:
        raise upstream_error(exc)
    if not deleted:
        raise not_found("Template style", style_id)
    return DeleteResponse(message="Deleted Successfully")
