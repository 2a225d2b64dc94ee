import pytest
from bson import ObjectId

from conftest import garment_payload
from errors import PersistenceError
from garment_service import GarmentService

pytestmark = pytest.mark.anyio


class UntouchableRepository:
    """Fails the test if the service reaches the repository."""

    def __getattr__(self, name):
        raise AssertionError(f"repository.{name} should not be called")


class BrokenStoreRepository:
    async def _fail(self, *args, **kwargs):
        raise PersistenceError("connection reset")

    create = find_by_id = update_by_id = delete_by_id = find_with_pagination = search_by_name = _fail


async def test_add_then_get_round_trip(garment_service):
    payload = garment_payload()
    added = await garment_service.add_garments(payload)
    assert added.success
    assert added.status_code == 201

    garment_id = added.data["garment"].id
    fetched = await garment_service.get_garment_by_id(garment_id)
    assert fetched.status_code == 200

    garment = fetched.data["garment"]
    for field, value in payload.items():
        assert getattr(garment, field) == value
    assert garment.created_at is not None
    assert garment.created_at <= garment.updated_at


async def test_add_invalid_garment_is_bad_request(garment_service):
    result = await garment_service.add_garments(garment_payload(name="x"))
    assert result.status_code == 400
    assert "name" in result.message


async def test_update_garment(garment_service):
    garment_id = (await garment_service.add_garments(garment_payload())).data["garment"].id
    result = await garment_service.update_garment(garment_id, {"availability": "pre_order", "price": 0})
    assert result.success
    assert result.data["garment"].availability == "pre_order"
    assert result.data["garment"].price == 0


async def test_update_negative_price_fails_and_keeps_entity(garment_service):
    garment_id = (await garment_service.add_garments(garment_payload(price=30))).data["garment"].id

    result = await garment_service.update_garment(garment_id, {"price": -1})
    assert not result.success
    assert result.status_code == 400

    stored = (await garment_service.get_garment_by_id(garment_id)).data["garment"]
    assert stored.price == 30


@pytest.mark.parametrize("method", ["update_garment", "delete_garment", "get_garment_by_id"])
@pytest.mark.parametrize("bad_id", ["", "123", "not-an-object-id", "zzzzzzzzzzzzzzzzzzzzzzzz"])
async def test_malformed_ids_are_rejected_before_repository(method, bad_id):
    service = GarmentService(UntouchableRepository())
    args = (bad_id, {"price": 1}) if method == "update_garment" else (bad_id,)
    result = await getattr(service, method)(*args)
    assert result.status_code == 400
    assert result.message == "Invalid garment ID"


async def test_missing_garment_is_not_found(garment_service):
    missing = str(ObjectId())
    assert (await garment_service.get_garment_by_id(missing)).status_code == 404
    assert (await garment_service.update_garment(missing, {"price": 1})).status_code == 404
    assert (await garment_service.delete_garment(missing)).status_code == 404


async def test_delete_then_get_is_not_found(garment_service):
    garment_id = (await garment_service.add_garments(garment_payload())).data["garment"].id
    deleted = await garment_service.delete_garment(garment_id)
    assert deleted.success
    assert deleted.data["garment"].id == garment_id
    assert (await garment_service.get_garment_by_id(garment_id)).status_code == 404


@pytest.mark.parametrize("page,limit", [(0, 10), (-1, 10), (1, 0), (1, -5), (0, 0)])
async def test_invalid_pagination_never_reaches_repository(page, limit):
    service = GarmentService(UntouchableRepository())
    for result in (
        await service.get_all_garments(page, limit),
        await service.search_garments_by_name("shirt", page, limit),
    ):
        assert result.status_code == 400
        assert result.message == "Invalid pagination parameters"


async def test_limit_above_maximum_is_rejected():
    service = GarmentService(UntouchableRepository(), max_page_limit=20)
    assert (await service.get_all_garments(1, 21)).status_code == 400


async def test_get_all_garments_paginates(garment_service):
    for i in range(12):
        await garment_service.add_garments(garment_payload(name=f"Shirt {i}"))

    result = await garment_service.get_all_garments(2, 5)
    assert result.success
    assert len(result.data["garments"]) == 5
    assert result.data["pagination"] == {
        "totalDocs": 12,
        "totalPages": 3,
        "currentPage": 2,
        "hasNextPage": True,
        "hasPrevPage": True,
        "nextPage": 3,
        "prevPage": 1,
    }


async def test_get_all_garments_defaults(garment_service):
    result = await garment_service.get_all_garments()
    assert result.success
    assert result.data["garments"] == []
    assert result.data["pagination"]["totalPages"] == 0
    assert result.data["pagination"]["currentPage"] == 1


async def test_search_echoes_term(garment_service):
    await garment_service.add_garments(garment_payload(name="Linen Shirt"))
    await garment_service.add_garments(garment_payload(name="Denim Jacket"))

    result = await garment_service.search_garments_by_name("linen")
    assert result.success
    assert result.data["searchTerm"] == "linen"
    assert [g.name for g in result.data["garments"]] == ["Linen Shirt"]
    assert result.data["pagination"]["totalDocs"] == 1


async def test_search_requires_a_term(garment_service):
    assert (await garment_service.search_garments_by_name("   ")).status_code == 400


async def test_store_failures_surface_as_internal_error():
    service = GarmentService(BrokenStoreRepository())
    valid_id = str(ObjectId())
    results = [
        await service.add_garments(garment_payload()),
        await service.get_garment_by_id(valid_id),
        await service.update_garment(valid_id, {"price": 1}),
        await service.delete_garment(valid_id),
        await service.get_all_garments(),
        await service.search_garments_by_name("shirt"),
    ]
    assert [r.status_code for r in results] == [500] * len(results)
    assert all("connection reset" not in r.message for r in results)


@pytest.mark.parametrize("page,limit", [(10 ** 19, 10), (2 ** 62, 3)])
async def test_page_past_skip_range_is_rejected(page, limit):
    service = GarmentService(UntouchableRepository())
    for result in (
        await service.get_all_garments(page, limit),
        await service.search_garments_by_name("shirt", page, limit),
    ):
        assert result.status_code == 400
        assert result.message == "Page out of range"
