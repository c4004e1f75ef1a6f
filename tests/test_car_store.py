"""Unit tests for cars/store.py -- CarStore and filter_cars().

Covers:
- create/get round trip keeps tag order and duplicates, and image order
- list_cars() returns every owner's cars, newest first
- update_car() and delete_car() only act when (car_id, user_id) both match
- update_car() rejects fields outside title/description/tags/images
- filter_cars() case-insensitive search over title, description and tags
"""

import pytest

from cars.models import Car
from cars.store import CarStore, filter_cars

ALICE = 1
BOB = 2


def _car(user_id: int = ALICE, username: str = "alice", **overrides) -> Car:
    fields = {
        "title": "Civic",
        "description": "Reliable daily driver",
        "tags": ["sedan", "compact"],
        "images": [],
    }
    fields.update(overrides)
    return Car(user_id=user_id, username=username, **fields)


@pytest.fixture
def store():
    s = CarStore("sqlite:///:memory:")
    yield s
    s.close()


class TestCreateAndRead:
    def test_create_assigns_id_and_timestamps(self, store: CarStore) -> None:
        car_id = store.create_car(_car())
        car = store.get_car(car_id)
        assert car.id == car_id
        assert car.user_id == ALICE
        assert car.username == "alice"
        assert car.created_at
        assert car.updated_at == car.created_at

    def test_tags_keep_order_and_duplicates(self, store: CarStore) -> None:
        car_id = store.create_car(_car(tags=["b", "a", "b"]))
        assert store.get_car(car_id).tags == ["b", "a", "b"]

    def test_images_keep_order(self, store: CarStore) -> None:
        images = [f"/uploads/{i}.jpg" for i in range(10)]
        car_id = store.create_car(_car(images=images))
        assert store.get_car(car_id).images == images

    def test_get_missing_returns_none(self, store: CarStore) -> None:
        assert store.get_car(12345) is None

    def test_list_returns_all_owners_newest_first(self, store: CarStore) -> None:
        first = store.create_car(_car(title="First"))
        second = store.create_car(_car(user_id=BOB, username="bob", title="Second"))
        assert [c.id for c in store.list_cars()] == [second, first]

    def test_list_empty(self, store: CarStore) -> None:
        assert store.list_cars() == []


class TestOwnershipScopedWrites:
    def test_owner_update_replaces_given_fields(self, store: CarStore) -> None:
        car_id = store.create_car(_car())
        updated = store.update_car(car_id, ALICE, title="Accord", tags=["sedan"])
        assert updated.title == "Accord"
        assert updated.tags == ["sedan"]
        assert updated.description == "Reliable daily driver"
        assert updated.user_id == ALICE

    def test_non_owner_update_returns_none_and_changes_nothing(self, store: CarStore) -> None:
        car_id = store.create_car(_car())
        assert store.update_car(car_id, BOB, title="Stolen") is None
        assert store.get_car(car_id).title == "Civic"

    def test_update_missing_returns_none(self, store: CarStore) -> None:
        assert store.update_car(999, ALICE, title="Ghost") is None

    def test_update_rejects_unknown_fields(self, store: CarStore) -> None:
        car_id = store.create_car(_car())
        with pytest.raises(ValueError):
            store.update_car(car_id, ALICE, user_id=BOB)

    def test_owner_delete(self, store: CarStore) -> None:
        car_id = store.create_car(_car())
        assert store.delete_car(car_id, ALICE) == 1
        assert store.get_car(car_id) is None

    def test_non_owner_delete_removes_nothing(self, store: CarStore) -> None:
        car_id = store.create_car(_car())
        assert store.delete_car(car_id, BOB) == 0
        assert store.get_car(car_id) is not None

    def test_delete_missing_returns_zero(self, store: CarStore) -> None:
        assert store.delete_car(999, ALICE) == 0


class TestFilterCars:
    @pytest.fixture
    def cars(self) -> list[Car]:
        return [
            _car(title="Civic", description="Reliable daily driver", tags=["sedan"]),
            _car(title="Wrangler", description="Goes anywhere", tags=["SUV", "4x4"]),
            _car(title="Model 3", description="Electric sedan", tags=["ev"]),
        ]

    def test_blank_query_returns_everything(self, cars: list[Car]) -> None:
        assert filter_cars(cars, None) == cars
        assert filter_cars(cars, "   ") == cars

    def test_matches_title_case_insensitive(self, cars: list[Car]) -> None:
        assert [c.title for c in filter_cars(cars, "WRANG")] == ["Wrangler"]

    def test_matches_description_and_tags(self, cars: list[Car]) -> None:
        assert [c.title for c in filter_cars(cars, "sedan")] == ["Civic", "Model 3"]

    def test_matches_tag_only(self, cars: list[Car]) -> None:
        assert [c.title for c in filter_cars(cars, "suv")] == ["Wrangler"]

    def test_no_match(self, cars: list[Car]) -> None:
        assert filter_cars(cars, "minivan") == []
