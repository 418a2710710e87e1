import asyncio
import random
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.core.database import AsyncSessionLocal
from app.core.exceptions import (
    CollegeAdminError,
    Conflict,
    Degraded,
    NotFound,
    Unavailable,
)
from app.models.department import Department
from app.models.faculty import Faculty
from app.schemas.department import DepartmentCreate, DepartmentUpdate
from app.schemas.faculty import FacultyUpdate
from app.services import department_service, faculty_service, hod_coordinator


def _fail_with(exc):
    async def _failing(*args, **kwargs):
        raise exc

    return _failing


# ------------------------------------------------------------------
# Compensation
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_failed_promotion_rolls_back_department(session, make_faculty, make_department, monkeypatch):
    f = await make_faculty()
    d = await make_department("Physics")
    monkeypatch.setattr(faculty_service, "set_hod_flag", _fail_with(NotFound("gone")))

    with pytest.raises(Conflict) as exc:
        await hod_coordinator.assign_hod(session, d.id, f.id)

    assert "rolled back" in exc.value.message
    department = await department_service.get_department(session, d.id)
    assert department.department_hod_id is None
    assert department.is_department_active is False


@pytest.mark.asyncio
async def test_timeout_surfaces_unavailable_after_compensation(
    session, make_faculty, make_department, monkeypatch
):
    f = await make_faculty()
    d = await make_department("Physics")
    monkeypatch.setattr(
        faculty_service, "set_hod_flag",
        _fail_with(Unavailable("Database timed out during promote faculty")),
    )

    with pytest.raises(Unavailable):
        await hod_coordinator.assign_hod(session, d.id, f.id)

    department = await department_service.get_department(session, d.id)
    assert department.department_hod_id is None


@pytest.mark.asyncio
async def test_failed_undo_reports_degraded(session, make_faculty, make_department, monkeypatch):
    f = await make_faculty()
    d = await make_department("Physics")
    original = department_service.set_department_hod
    calls = {"n": 0}

    async def first_call_only(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            return await original(*args, **kwargs)
        raise Unavailable("Database unavailable during set department HOD")

    monkeypatch.setattr(department_service, "set_department_hod", first_call_only)
    monkeypatch.setattr(faculty_service, "set_hod_flag", _fail_with(Unavailable("down")))

    with pytest.raises(Degraded) as exc:
        await hod_coordinator.assign_hod(session, d.id, f.id)

    reconcile = exc.value.details["reconcile"]
    assert reconcile["department_id"] == d.id
    assert reconcile["faculty_id"] == f.id
    assert "failed_step" in reconcile
    assert exc.value.status_code == 500


@pytest.mark.asyncio
async def test_failed_repoint_restores_old_hod(session, make_faculty, make_department, monkeypatch):
    old = await make_faculty()
    new = await make_faculty()
    d = await make_department("Physics")
    await hod_coordinator.assign_hod(session, d.id, old.id)
    monkeypatch.setattr(
        department_service, "set_department_hod", _fail_with(Unavailable("down"))
    )

    with pytest.raises(Unavailable):
        await hod_coordinator.reassign_hod(session, d.id, old.id, new.id)

    monkeypatch.undo()
    department = await department_service.get_department(session, d.id)
    assert department.department_hod_id == old.id
    assert (await faculty_service.get_faculty(session, old.id)).is_hod is True
    assert (await faculty_service.get_faculty(session, new.id)).is_hod is False


@pytest.mark.asyncio
async def test_create_department_removes_row_when_assign_fails(session, make_faculty, monkeypatch):
    f = await make_faculty()
    monkeypatch.setattr(faculty_service, "set_hod_flag", _fail_with(Unavailable("down")))

    with pytest.raises(Unavailable):
        await hod_coordinator.create_department(
            session, DepartmentCreate(name="Physics", department_hod_id=f.id), "admin@college.edu"
        )

    assert await department_service.list_departments(session) == []


@pytest.mark.asyncio
async def test_cancellation_mid_transition_is_compensated(
    session, make_faculty, make_department, monkeypatch
):
    f = await make_faculty()
    d = await make_department("Physics")
    monkeypatch.setattr(faculty_service, "set_hod_flag", _fail_with(asyncio.CancelledError()))

    with pytest.raises(asyncio.CancelledError):
        await hod_coordinator.assign_hod(session, d.id, f.id)

    department = await department_service.get_department(session, d.id)
    assert department.department_hod_id is None
    assert department.is_department_active is False


# ------------------------------------------------------------------
# Conditional writes
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_stale_version_is_a_conflict(session, make_faculty, make_department):
    f = await make_faculty()
    d = await make_department("Physics")
    await department_service.update_department(session, d.id, DepartmentUpdate(name="Physics Dept"))

    with pytest.raises(Conflict) as exc:
        await department_service.set_department_hod(session, d.id, f.id, expected_version=d.version)

    assert exc.value.details["current_version"] == d.version + 1
    department = await department_service.get_department(session, d.id)
    assert department.department_hod_id is None


@pytest.mark.asyncio
async def test_every_write_bumps_version(session, make_faculty):
    f = await make_faculty()

    updated = await faculty_service.update_faculty(
        session, f.id, FacultyUpdate(phone="12345")
    )

    assert updated.version == f.version + 1
    assert updated.phone == "12345"


@pytest.mark.asyncio
async def test_concurrent_assigns_of_one_faculty(make_faculty, make_department):
    f = await make_faculty()
    physics = await make_department("Physics")
    maths = await make_department("Mathematics")

    async with AsyncSessionLocal() as s1, AsyncSessionLocal() as s2:
        results = await asyncio.gather(
            hod_coordinator.assign_hod(s1, physics.id, f.id),
            hod_coordinator.assign_hod(s2, maths.id, f.id),
            return_exceptions=True,
        )

    failures = [r for r in results if isinstance(r, BaseException)]
    assert len(failures) == 1
    assert isinstance(failures[0], Conflict)

    async with AsyncSessionLocal() as s:
        chaired = await department_service.find_by_hod_id(s, f.id)
        report = await hod_coordinator.check_consistency(s)
    assert chaired is not None
    assert report.consistent is True


@pytest.mark.asyncio
async def test_concurrent_assigns_to_one_department(make_faculty, make_department):
    a = await make_faculty()
    b = await make_faculty()
    d = await make_department("Physics")

    async with AsyncSessionLocal() as s1, AsyncSessionLocal() as s2:
        results = await asyncio.gather(
            hod_coordinator.assign_hod(s1, d.id, a.id),
            hod_coordinator.assign_hod(s2, d.id, b.id),
            return_exceptions=True,
        )

    assert sum(isinstance(r, Conflict) for r in results) == 1
    async with AsyncSessionLocal() as s:
        flags = [(await faculty_service.get_faculty(s, x.id)).is_hod for x in (a, b)]
    assert sorted(flags) == [False, True]


# ------------------------------------------------------------------
# Random transition sequences keep the invariants
# ------------------------------------------------------------------
@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [1, 7, 42])
async def test_random_transitions_keep_invariants(session, make_faculty, make_department, seed):
    rng = random.Random(seed)
    faculty_ids = [(await make_faculty()).id for _ in range(5)]
    department_ids = [(await make_department(f"Dept {i}")).id for i in range(3)]

    for _ in range(40):
        op = rng.choice(["assign", "reassign", "release", "change"])
        d_id = rng.choice(department_ids)
        f_id = rng.choice(faculty_ids)
        try:
            if op == "assign":
                await hod_coordinator.assign_hod(session, d_id, f_id, activate=rng.random() < 0.7)
            elif op == "reassign":
                current = (await department_service.get_department(session, d_id)).department_hod_id
                if current is not None:
                    await hod_coordinator.reassign_hod(session, d_id, current, f_id)
            elif op == "release":
                await hod_coordinator.release_hod_if_any(session, f_id)
            else:
                await hod_coordinator.change_department_hod(
                    session, d_id, rng.choice([None, f_id])
                )
        except CollegeAdminError as e:
            # Rejections are fine; partial state is not
            assert not isinstance(e, Degraded)

        report = await hod_coordinator.check_consistency(session)
        assert report.consistent, report.issues

        departments = await department_service.list_departments(session)
        for department in departments:
            if department.is_department_active:
                assert department.department_hod_id is not None
        for fid in faculty_ids:
            faculty = await faculty_service.get_faculty(session, fid)
            chairs = [x for x in departments if x.department_hod_id == fid]
            assert faculty.is_hod == (len(chairs) == 1)


@pytest.mark.asyncio
async def test_failed_promotion_restores_demoted_hod(session, make_faculty, make_department, monkeypatch):
    old = await make_faculty()
    new = await make_faculty()
    d = await make_department("Physics")
    await hod_coordinator.assign_hod(session, d.id, old.id)
    original = faculty_service.set_hod_flag
    calls = {"n": 0}

    async def fail_second_call(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise Unavailable("Database unavailable during promote faculty")
        return await original(*args, **kwargs)

    monkeypatch.setattr(faculty_service, "set_hod_flag", fail_second_call)

    with pytest.raises(Unavailable):
        await hod_coordinator.reassign_hod(session, d.id, old.id, new.id)

    monkeypatch.undo()
    department = await department_service.get_department(session, d.id)
    assert department.department_hod_id == old.id
    assert (await faculty_service.get_faculty(session, old.id)).is_hod is True
    assert (await faculty_service.get_faculty(session, new.id)).is_hod is False


# ------------------------------------------------------------------
# update_department keeps HOD change and field edits together
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_failed_field_edit_leaves_hod_unassigned(session, make_faculty, make_department, monkeypatch):
    f = await make_faculty()
    d = await make_department("Physics")
    monkeypatch.setattr(department_service, "update_department", _fail_with(Unavailable("down")))

    with pytest.raises(Unavailable):
        await hod_coordinator.update_department(
            session, d.id,
            DepartmentUpdate(department_hod_id=f.id, name="Physics Dept", is_department_active=True),
        )

    department = await department_service.get_department(session, d.id)
    assert department.department_hod_id is None
    assert department.is_department_active is False
    assert department.name == "Physics"
    assert (await faculty_service.get_faculty(session, f.id)).is_hod is False


@pytest.mark.asyncio
async def test_failed_hod_change_restores_edited_fields(session, make_faculty, make_department, monkeypatch):
    f = await make_faculty()
    d = await make_department("Physics")
    monkeypatch.setattr(faculty_service, "set_hod_flag", _fail_with(Unavailable("down")))

    with pytest.raises(Unavailable):
        await hod_coordinator.update_department(
            session, d.id,
            DepartmentUpdate(department_hod_id=f.id, name="Physics Dept", is_department_active=True),
        )

    department = await department_service.get_department(session, d.id)
    assert department.name == "Physics"
    assert department.department_hod_id is None
    assert department.is_department_active is False


# ------------------------------------------------------------------
# Cross-session guards without the in-process locks
# ------------------------------------------------------------------
@asynccontextmanager
async def _no_locks(*keys):
    yield


@pytest_asyncio.fixture
async def file_sessions(tmp_path):
    # One connection per session, like separate clients of the hosted database
    file_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'hod.db'}")
    async with file_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield async_sessionmaker(bind=file_engine, class_=AsyncSession, expire_on_commit=False)
    await file_engine.dispose()


def _rendezvous_before_department_write(monkeypatch, parties=2):
    """Hold the first department writes until every caller has passed its checks."""
    original = department_service.set_department_hod
    arrived = {"n": 0}
    everyone_here = asyncio.Event()

    async def wait_then_write(*args, **kwargs):
        if arrived["n"] < parties:
            arrived["n"] += 1
            if arrived["n"] == parties:
                everyone_here.set()
            await asyncio.wait_for(everyone_here.wait(), timeout=5)
        return await original(*args, **kwargs)

    monkeypatch.setattr(department_service, "set_department_hod", wait_then_write)


async def _seed(session_factory, faculty_count, department_names):
    async with session_factory() as s:
        faculty = [
            Faculty(
                first_name=f"Faculty{i}", last_name="Test", department="Physics",
                email=f"faculty{i}@college.edu", is_active=True, admin_email="admin@college.edu",
            )
            for i in range(faculty_count)
        ]
        departments = [Department(name=n, admin_email="admin@college.edu") for n in department_names]
        s.add_all(faculty + departments)
        await s.commit()
        return [f.id for f in faculty], [d.id for d in departments]


@pytest.mark.asyncio
async def test_interleaved_assigns_to_one_department_lose_on_version(file_sessions, monkeypatch):
    (a, b), (d,) = await _seed(file_sessions, 2, ["Physics"])
    monkeypatch.setattr(hod_coordinator, "_serialized", _no_locks)
    _rendezvous_before_department_write(monkeypatch)

    async with file_sessions() as s1, file_sessions() as s2:
        results = await asyncio.gather(
            hod_coordinator.assign_hod(s1, d, a),
            hod_coordinator.assign_hod(s2, d, b),
            return_exceptions=True,
        )

    conflicts = [r for r in results if isinstance(r, Conflict)]
    assert len(conflicts) == 1
    assert "modified concurrently" in conflicts[0].message

    async with file_sessions() as s:
        department = await department_service.get_department(s, d)
        flags = {x: (await faculty_service.get_faculty(s, x)).is_hod for x in (a, b)}
        report = await hod_coordinator.check_consistency(s)
    assert department.department_hod_id in (a, b)
    assert flags[department.department_hod_id] is True
    assert sorted(flags.values()) == [False, True]
    assert report.consistent is True


@pytest.mark.asyncio
async def test_interleaved_assigns_of_one_faculty_hit_unique_chair(file_sessions, monkeypatch):
    (f,), (physics, maths) = await _seed(file_sessions, 1, ["Physics", "Mathematics"])
    monkeypatch.setattr(hod_coordinator, "_serialized", _no_locks)
    _rendezvous_before_department_write(monkeypatch)

    async with file_sessions() as s1, file_sessions() as s2:
        results = await asyncio.gather(
            hod_coordinator.assign_hod(s1, physics, f),
            hod_coordinator.assign_hod(s2, maths, f),
            return_exceptions=True,
        )

    assert sum(isinstance(r, Conflict) for r in results) == 1
    assert not any(isinstance(r, Degraded) for r in results)

    async with file_sessions() as s:
        chairs = [
            x for x in await department_service.list_departments(s) if x.department_hod_id == f
        ]
        report = await hod_coordinator.check_consistency(s)
    assert len(chairs) == 1
    assert report.consistent is True
