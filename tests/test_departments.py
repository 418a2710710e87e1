import pytest

from app.core.exceptions import Conflict, InvalidState, NotFound
from app.schemas.department import DepartmentCreate, DepartmentUpdate
from app.services import department_service, faculty_service, hod_coordinator

ADMIN = "admin@college.edu"


@pytest.mark.asyncio
async def test_create_active_without_hod_is_invalid(session):
    with pytest.raises(InvalidState):
        await department_service.create_department(
            session, DepartmentCreate(name="Physics", is_department_active=True), ADMIN
        )


@pytest.mark.asyncio
async def test_blank_establish_year_is_none(session):
    department = await department_service.create_department(
        session, DepartmentCreate(name="Physics", establish_year=""), ADMIN
    )

    assert department.establish_year is None
    assert department.is_department_active is False


@pytest.mark.asyncio
async def test_update_cannot_activate_without_hod(session, make_department):
    d = await make_department("Physics")

    with pytest.raises(InvalidState):
        await department_service.update_department(
            session, d.id, DepartmentUpdate(is_department_active=True)
        )


@pytest.mark.asyncio
async def test_find_by_hod_id_without_match(session, make_faculty):
    f = await make_faculty()

    assert await department_service.find_by_hod_id(session, f.id) is None


@pytest.mark.asyncio
async def test_deactivate_keeps_hod(session, make_faculty, make_department):
    f = await make_faculty()
    d = await make_department("Physics")
    await hod_coordinator.assign_hod(session, d.id, f.id)

    updated = await department_service.set_department_active(session, d.id, False)

    assert updated.is_department_active is False
    assert updated.department_hod_id == f.id


@pytest.mark.asyncio
async def test_search_by_name(session, make_department):
    await make_department("Electrical Engineering")
    await make_department("Physics")

    found = await department_service.search_departments(session, "electrical", ADMIN)

    assert [d.name for d in found] == ["Electrical Engineering"]


@pytest.mark.asyncio
async def test_delete_releases_hod(session, make_faculty, make_department):
    f = await make_faculty()
    d = await make_department("Physics")
    await hod_coordinator.assign_hod(session, d.id, f.id)

    await department_service.delete_department(session, d.id)

    with pytest.raises(NotFound):
        await department_service.get_department(session, d.id)
    assert (await faculty_service.get_faculty(session, f.id)).is_hod is False


@pytest.mark.asyncio
async def test_delete_goes_ahead_when_release_fails(session, make_faculty, make_department, monkeypatch):
    f = await make_faculty()
    d = await make_department("Physics")
    await hod_coordinator.assign_hod(session, d.id, f.id)

    async def refuse(*args, **kwargs):
        raise Conflict("busy")

    monkeypatch.setattr(hod_coordinator, "release_hod_if_any", refuse)

    await department_service.delete_department(session, d.id)

    assert await department_service.list_departments(session) == []
