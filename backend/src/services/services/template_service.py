from __future__ import annotations

import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from supabase import Client, create_client

from config.settings import ConfigurationError, SupabaseSettings

logger = logging.getLogger(__name__)

TEMPLATES_TABLE = "templates"
TEMPLATE_STYLES_TABLE = "template_styles"

ModelT = TypeVar("ModelT", bound=BaseModel)


class TemplateCatalogError(Exception):
    """Raised when template catalog operations fail."""


class TemplateCatalogService(Generic[ModelT]):
    """CRUD over one catalog table (templates or template styles) in Supabase."""

    def __init__(
        self,
        table: str,
        model: Type[ModelT],
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        *,
        client: Optional[Client] = None,
    ) -> None:
        self.table = table
        self.model = model
        if client is not None:
            self.client = client
            return

        try:
            settings = SupabaseSettings.from_env(supabase_url, supabase_key)
        except ConfigurationError as exc:
            raise TemplateCatalogError(str(exc)) from exc

        try:
            self.client: Client = create_client(settings.url, settings.key)
        except Exception as exc:
            raise TemplateCatalogError(f"Failed to initialize Supabase client: {exc}") from exc

    def apply_access_token(self, token: Optional[str]) -> None:
        if token:
            self.client.postgrest.auth(token)

    def _handle_response(self, response: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        if response is not None:
            return response
        logger.error(f"Supabase operation on {self.table} returned None")
        raise TemplateCatalogError("Supabase operation returned None")

    def _to_model(self, row: Dict[str, Any]) -> ModelT:
        try:
            return self.model.model_validate(row)
        except ValidationError as exc:
            raise TemplateCatalogError(f"Malformed {self.table} row: {exc}") from exc

    def list_items(self) -> List[ModelT]:
        try:
            response = self.client.table(self.table).select("*").order("id").execute()
            data = self._handle_response(response.data)
        except TemplateCatalogError:
            raise
        except Exception as exc:
            logger.error(f"Failed to list {self.table}: {exc}")
            raise TemplateCatalogError(f"Failed to list {self.table}: {exc}") from exc
        return [self._to_model(row) for row in data]

    def create_item(self, payload: BaseModel) -> ModelT:
        try:
            response = self.client.table(self.table).insert(payload.model_dump()).execute()
            data = self._handle_response(response.data)
        except TemplateCatalogError:
            raise
        except Exception as exc:
            logger.error(f"Failed to create {self.table} row: {exc}")
            raise TemplateCatalogError(f"Failed to create {self.table} row: {exc}") from exc
        if not data:
            raise TemplateCatalogError(f"Insert into {self.table} returned no rows")
        return self._to_model(data[0])

    def update_item(self, item_id: int, payload: BaseModel) -> Optional[ModelT]:
        """Replace every column of row ``item_id``; None when the row does not exist."""
        try:
            response = (
                self.client.table(self.table)
                .update(payload.model_dump())
                .eq("id", item_id)
                .execute()
            )
            data = self._handle_response(response.data)
        except TemplateCatalogError:
            raise
        except Exception as exc:
            logger.error(f"Failed to update {self.table} row {item_id}: {exc}")
            raise TemplateCatalogError(f"Failed to update {self.table} row {item_id}: {exc}") from exc
        if not data:
            return None
        return self._to_model(data[0])

    def delete_item(self, item_id: int) -> bool:
        try:
            response = self.client.table(self.table).delete().eq("id", item_id).execute()
            data = self._handle_response(response.data)
        except TemplateCatalogError:
            raise
        except Exception as exc:
            logger.error(f"Failed to delete {self.table} row {item_id}: {exc}")
            raise TemplateCatalogError(f"Failed to delete {self.table} row {item_id}: {exc}") from exc
        return bool(data)
