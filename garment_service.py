import logging
from typing import Any, Dict

from bson import ObjectId

from errors import PersistenceError, SchemaValidationError
from repository import GarmentRepository
from responses import ServiceResponse

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", -1)]
# skip is sent to the server as a signed 64-bit integer
MAX_SKIP = 2 ** 63 - 1


class GarmentService:
    def __init__(self, garments: GarmentRepository, max_page_limit: int = 100):
        self.garments = garments
        self.max_page_limit = max_page_limit

    def _check_pagination(self, page: int, limit: int):
        if page < 1 or limit < 1:
            return ServiceResponse.bad_request("Invalid pagination parameters")
        if (page - 1) * limit > MAX_SKIP:
            return ServiceResponse.bad_request("Page out of range")
        if limit > self.max_page_limit:
            return ServiceResponse.bad_request(f"Limit cannot exceed {self.max_page_limit}")
        return None

    async def add_garments(self, garment: Dict[str, Any]) -> ServiceResponse:
        try:
            added = await self.garments.create(garment)
        except SchemaValidationError as e:
            return ServiceResponse.bad_request(e.message)
        except PersistenceError:
            logger.exception("Failed to add garment")
            return ServiceResponse.internal_server_error("Failed to add garment")

        if not added:
            return ServiceResponse.internal_server_error("Failed to add garment")
        return ServiceResponse.created("Garment added successfully", {"garment": added})

    async def update_garment(self, id: str, garment: Dict[str, Any]) -> ServiceResponse:
        if not ObjectId.is_valid(id):
            return ServiceResponse.bad_request("Invalid garment ID")

        try:
            updated = await self.garments.update_by_id(id, garment)
        except SchemaValidationError as e:
            return ServiceResponse.bad_request(e.message)
        except PersistenceError:
            logger.exception("Failed to update garment %s", id)
            return ServiceResponse.internal_server_error("Failed to update garment")

        if not updated:
            return ServiceResponse.not_found("Garment not found")
        return ServiceResponse.ok("Garment updated successfully", {"garment": updated})

    async def delete_garment(self, id: str) -> ServiceResponse:
        if not ObjectId.is_valid(id):
            return ServiceResponse.bad_request("Invalid garment ID")

        try:
            deleted = await self.garments.delete_by_id(id)
        except PersistenceError:
            logger.exception("Failed to delete garment %s", id)
            return ServiceResponse.internal_server_error("Failed to delete garment")

        if not deleted:
            return ServiceResponse.not_found("Garment not found")
        return ServiceResponse.ok("Garment deleted successfully", {"garment": deleted})

    async def get_garment_by_id(self, id: str) -> ServiceResponse:
        if not ObjectId.is_valid(id):
            return ServiceResponse.bad_request("Invalid garment ID")

        try:
            garment = await self.garments.find_by_id(id)
        except PersistenceError:
            logger.exception("Failed to fetch garment %s", id)
            return ServiceResponse.internal_server_error("Failed to fetch garment")

        if not garment:
            return ServiceResponse.not_found("Garment not found")
        return ServiceResponse.ok("Garment fetched successfully", {"garment": garment})

    async def get_all_garments(self, page: int = 1, limit: int = 10) -> ServiceResponse:
        invalid = self._check_pagination(page, limit)
        if invalid:
            return invalid

        try:
            result = await self.garments.find_with_pagination({}, page, limit, sort=NEWEST_FIRST)
        except PersistenceError:
            logger.exception("Failed to fetch garments")
            return ServiceResponse.internal_server_error("Failed to fetch garments")

        return ServiceResponse.ok("Garments fetched successfully", {
            "garments": result.docs,
            "pagination": result.metadata(),
        })

    async def search_garments_by_name(self, name: str, page: int = 1, limit: int = 10) -> ServiceResponse:
        invalid = self._check_pagination(page, limit)
        if invalid:
            return invalid
        name = (name or "").strip()
        if not name:
            return ServiceResponse.bad_request("Search term is required")

        try:
            result = await self.garments.search_by_name(name, page, limit, sort=NEWEST_FIRST)
        except PersistenceError:
            logger.exception("Failed to search garments")
            return ServiceResponse.internal_server_error("Failed to search garments")

        return ServiceResponse.ok("Search completed successfully", {
            "garments": result.docs,
            "searchTerm": name,
            "pagination": result.metadata(),
        })
