# app/services/hod_coordinator.py
"""
HOD consistency coordinator.

Every write touching the triple

    (faculty.is_hod, department.department_hod_id, department.is_department_active)

goes through this module. The hosted database gives us no multi-statement
transaction across round trips, so each transition is a short sequence of
conditional (compare-and-swap) writes with an undo log:

  * a write whose row changed since it was read fails with Conflict;
  * once a write has landed, any later failure (including cancellation or
    a timeout) replays the undo log in reverse before the error surfaces;
  * if an undo itself fails the caller gets Degraded, naming the rows that
    may now disagree.

Within one process, transitions on the same faculty/department ids are also
serialized with per-id asyncio locks taken in a fixed order.

Kept after every transition:
  faculty.is_hod  <=>  exactly one department points at the faculty
  department.is_department_active  =>  department_hod_id is not None
"""

import asyncio
import weakref
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Awaitable, Callable, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    CollegeAdminError,
    Conflict,
    Degraded,
    InvalidOperation,
    InvalidState,
    NotFound,
    PreconditionFailed,
    Unavailable,
)
from app.models.department import Department
from app.models.faculty import Faculty
from app.schemas.department import DepartmentCreate, DepartmentRead, DepartmentUpdate
from app.schemas.hod import (
    ConsistencyIssue,
    ConsistencyReport,
    HodRelease,
    HodReplacement,
)
from app.services import department_service, faculty_service

# Attempts to pin down which department a faculty chairs before locking it
_LOOKUP_ATTEMPTS = 3


# ------------------------------------------------------------
# PER-ID SERIALIZATION
# ------------------------------------------------------------
_locks: "weakref.WeakValueDictionary[tuple[str, int], asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(kind: str, key: int) -> asyncio.Lock:
    lock = _locks.get((kind, key))
    if lock is None:
        lock = asyncio.Lock()
        _locks[(kind, key)] = lock
    return lock


@asynccontextmanager
async def _serialized(*keys: tuple[str, Optional[int]]):
    """Hold the lock of every (kind, id) key; sorted acquisition avoids deadlock."""
    async with AsyncExitStack() as stack:
        for kind, key in sorted({k for k in keys if k[1] is not None}):
            await stack.enter_async_context(_lock_for(kind, key))
        yield


# ------------------------------------------------------------
# UNDO LOG
# ------------------------------------------------------------
class _Transition:
    def __init__(self, name: str, entities: dict):
        self.name = name
        self.entities = entities
        self._undo: list[tuple[str, Callable[[], Awaitable]]] = []

    @property
    def has_writes(self) -> bool:
        return bool(self._undo)

    def on_rollback(self, description: str, undo: Callable[[], Awaitable]) -> None:
        self._undo.append((description, undo))

    async def compensate(self, cause: BaseException) -> None:
        for description, undo in reversed(self._undo):
            try:
                await undo()
            except Exception as e:
                logger.error(
                    "{}: compensation '{}' failed ({}); state needs manual reconciliation: {}",
                    self.name, description, e, self.entities,
                )
                raise Degraded(
                    f"{self.name} failed and could not be rolled back; "
                    "department/faculty records may be inconsistent",
                    reconcile={**self.entities, "failed_step": description},
                    cause=cause,
                ) from e
            logger.warning("{}: compensated '{}' after: {}", self.name, description, cause)


def _describe(exc: BaseException) -> str:
    return exc.message if isinstance(exc, CollegeAdminError) else repr(exc)


@asynccontextmanager
async def _transition(name: str, **entities):
    transition = _Transition(name, entities)
    try:
        yield transition
    except (Exception, asyncio.CancelledError) as exc:
        if not transition.has_writes:
            raise
        await transition.compensate(exc)
        if isinstance(exc, (Conflict, Unavailable, Degraded)) or not isinstance(exc, CollegeAdminError):
            raise
        raise Conflict(f"{name} was rolled back: {_describe(exc)}") from exc


# ------------------------------------------------------------
# PRECONDITIONS
# ------------------------------------------------------------
async def _ensure_can_chair(
    session: AsyncSession, faculty: Faculty, department_id: Optional[int]
) -> None:
    """One faculty chairs at most one department."""
    if not faculty.is_active:
        raise PreconditionFailed(f"{faculty.full_name} is inactive and cannot be made HOD")

    chaired = await department_service.find_by_hod_id(session, faculty.id)
    if chaired is not None and chaired.id != department_id:
        raise Conflict(
            f"{faculty.full_name} is already HOD of {chaired.name}",
            details={"department_id": chaired.id, "department_name": chaired.name},
        )
    if chaired is None and faculty.is_hod:
        raise Conflict(f"{faculty.full_name} is already HOD of another department")


# ------------------------------------------------------------
# TRANSITIONS (callers hold the locks)
# ------------------------------------------------------------
async def _assign(
    session: AsyncSession, department_id: int, faculty_id: int, activate: bool
) -> Department:
    department = await department_service.get_department(session, department_id)
    faculty = await faculty_service.get_faculty(session, faculty_id)

    if department.department_hod_id == faculty_id and faculty.is_hod:
        if activate and not department.is_department_active:
            return await department_service.set_department_active(session, department_id, True)
        return department
    if department.department_hod_id is not None:
        raise Conflict(f"{department.name} already has an HOD; reassign instead")

    await _ensure_can_chair(session, faculty, department_id)

    async with _transition("assign HOD", department_id=department_id, faculty_id=faculty_id) as t:
        updated = await department_service.set_department_hod(
            session, department_id, faculty_id,
            is_active=activate, expected_version=department.version,
        )
        t.on_rollback(
            f"clear HOD of department {department_id}",
            lambda: department_service.set_department_hod(
                session, department_id, None, expected_version=updated.version
            ),
        )
        await faculty_service.set_hod_flag(
            session, faculty_id, True, expected_version=faculty.version
        )

    logger.info("Faculty {} assigned HOD of department {}", faculty_id, department_id)
    return updated


async def _reassign(
    session: AsyncSession,
    department_id: int,
    old_faculty_id: int,
    new_faculty_id: int,
    activate: Optional[bool] = None,
) -> Department:
    department = await department_service.get_department(session, department_id)
    if department.department_hod_id != old_faculty_id:
        raise Conflict(f"HOD of {department.name} has changed; reload and try again")
    if new_faculty_id == old_faculty_id:
        return department

    old = await faculty_service.get_faculty(session, old_faculty_id)
    new = await faculty_service.get_faculty(session, new_faculty_id)
    await _ensure_can_chair(session, new, department_id)

    async with _transition(
        "reassign HOD",
        department_id=department_id,
        old_faculty_id=old_faculty_id,
        new_faculty_id=new_faculty_id,
    ) as t:
        if old.is_hod:
            demoted = await faculty_service.set_hod_flag(
                session, old_faculty_id, False, expected_version=old.version
            )
            t.on_rollback(
                f"re-promote faculty {old_faculty_id}",
                lambda: faculty_service.set_hod_flag(
                    session, old_faculty_id, True, expected_version=demoted.version
                ),
            )

        promoted = await faculty_service.set_hod_flag(
            session, new_faculty_id, True, expected_version=new.version
        )
        t.on_rollback(
            f"demote faculty {new_faculty_id}",
            lambda: faculty_service.set_hod_flag(
                session, new_faculty_id, False, expected_version=promoted.version
            ),
        )

        updated = await department_service.set_department_hod(
            session, department_id, new_faculty_id,
            is_active=activate, expected_version=department.version,
        )

    logger.info(
        "HOD of department {} reassigned from faculty {} to {}",
        department_id, old_faculty_id, new_faculty_id,
    )
    return updated


async def _release(
    session: AsyncSession, faculty_id: int, department: Optional[Department], reason: str
) -> HodRelease:
    faculty = await faculty_service.get_faculty(session, faculty_id)

    if department is None:
        if faculty.is_hod:
            logger.warning("Faculty {} flagged HOD without a department; clearing flag", faculty_id)
            await faculty_service.set_hod_flag(
                session, faculty_id, False, expected_version=faculty.version
            )
        return HodRelease(faculty_id=faculty_id, department_affected=None)

    was_active = department.is_department_active

    async with _transition(reason, department_id=department.id, faculty_id=faculty_id) as t:
        cleared = await department_service.set_department_hod(
            session, department.id, None, expected_version=department.version
        )
        t.on_rollback(
            f"restore HOD of department {department.id}",
            lambda: department_service.set_department_hod(
                session, department.id, faculty_id,
                is_active=was_active, expected_version=cleared.version,
            ),
        )
        if faculty.is_hod:
            await faculty_service.set_hod_flag(
                session, faculty_id, False, expected_version=faculty.version
            )

    logger.info(
        "{}: faculty {} no longer HOD; department {} deactivated",
        reason, faculty_id, department.id,
    )
    return HodRelease(
        faculty_id=faculty_id,
        department_affected=DepartmentRead.model_validate(cleared),
    )


async def _release_locked(session: AsyncSession, faculty_id: int, reason: str) -> HodRelease:
    for _ in range(_LOOKUP_ATTEMPTS):
        department = await department_service.find_by_hod_id(session, faculty_id)
        department_id = department.id if department else None

        async with _serialized(("faculty", faculty_id), ("department", department_id)):
            current = await department_service.find_by_hod_id(session, faculty_id)
            if (current.id if current else None) == department_id:
                return await _release(session, faculty_id, current, reason)

    raise Conflict(f"HOD assignment of faculty {faculty_id} keeps changing; try again")


# ------------------------------------------------------------
# PUBLIC OPERATIONS
# ------------------------------------------------------------
async def assign_hod(
    session: AsyncSession, department_id: int, faculty_id: int, activate: bool = True
) -> Department:
    """Make `faculty_id` the chair of a department that has none."""
    async with _serialized(("department", department_id), ("faculty", faculty_id)):
        return await _assign(session, department_id, faculty_id, activate)


async def reassign_hod(
    session: AsyncSession,
    department_id: int,
    old_faculty_id: int,
    new_faculty_id: int,
    activate: Optional[bool] = None,
) -> Department:
    """Swap a department's chair: demote old, promote new, repoint department."""
    async with _serialized(
        ("department", department_id),
        ("faculty", old_faculty_id),
        ("faculty", new_faculty_id),
    ):
        return await _reassign(session, department_id, old_faculty_id, new_faculty_id, activate)


async def release_hod_if_any(session: AsyncSession, faculty_id: int) -> HodRelease:
    """
    Drop the faculty's HOD duties. The chaired department (if any) loses its
    HOD and is deactivated; it is returned so the caller can warn about it.
    No-op when the faculty chairs nothing.
    """
    return await _release_locked(session, faculty_id, "release HOD")


async def demote_hod(session: AsyncSession, faculty_id: int) -> HodRelease:
    """Explicit admin demotion; same effect and result as release_hod_if_any."""
    return await _release_locked(session, faculty_id, "demote HOD")


async def change_department_hod(
    session: AsyncSession,
    department_id: int,
    faculty_id: Optional[int],
    activate: bool = True,
) -> Department:
    """Assign, reassign or clear a department's HOD depending on its current one."""
    department = await department_service.get_department(session, department_id)
    current = department.department_hod_id

    if faculty_id is None:
        if current is None:
            return department
        await _release_locked(session, current, "clear department HOD")
        return await department_service.get_department(session, department_id)
    if current is None:
        return await assign_hod(session, department_id, faculty_id, activate)
    return await reassign_hod(session, department_id, current, faculty_id, activate)


async def create_department(
    session: AsyncSession, data: DepartmentCreate, admin_email: str
) -> Department:
    """
    Create a department, optionally with its HOD. The row is inserted
    without an HOD first; if the assignment then fails the row is removed.
    """
    hod_id = data.department_hod_id
    if hod_id is None:
        return await department_service.create_department(session, data, admin_email)

    activate = True if data.is_department_active is None else data.is_department_active
    candidate = await faculty_service.get_faculty(session, hod_id)
    await _ensure_can_chair(session, candidate, None)

    draft = data.model_copy(update={"department_hod_id": None, "is_department_active": False})
    department = await department_service.create_department(session, draft, admin_email)

    try:
        return await assign_hod(session, department.id, hod_id, activate)
    except (Exception, asyncio.CancelledError) as exc:
        try:
            await department_service.remove_department_row(session, department.id)
        except CollegeAdminError as e:
            logger.error("Could not remove department {} after failed HOD assignment", department.id)
            raise Degraded(
                f"Department {department.name} was created but its HOD could not be assigned "
                "and the row could not be removed",
                reconcile={"department_id": department.id, "faculty_id": hod_id},
                cause=exc,
            ) from e
        logger.warning(
            "Department {} removed after failed HOD assignment: {}", department.id, _describe(exc)
        )
        raise


async def update_department(
    session: AsyncSession, department_id: int, patch: DepartmentUpdate
) -> Department:
    """
    Apply an admin edit. A changed department_hod_id becomes an assign,
    reassign or release; the other fields go through the department store.
    """
    department = await department_service.get_department(session, department_id)
    fields = patch.model_dump(exclude_unset=True)

    old_hod = department.department_hod_id
    if "department_hod_id" not in fields or fields["department_hod_id"] == old_hod:
        return await department_service.update_department(session, department_id, patch)

    new_hod = fields["department_hod_id"]
    want_active = fields.get("is_department_active")
    if new_hod is None and want_active:
        raise InvalidState("A department cannot be active without an HOD")
    if "name" in fields and (not fields["name"] or not fields["name"].strip()):
        raise InvalidState("Department name cannot be empty")

    remaining = {
        k: v for k, v in fields.items()
        if k not in ("department_hod_id", "is_department_active")
    }

    async with _serialized(
        ("department", department_id), ("faculty", old_hod), ("faculty", new_hod)
    ):
        async with _transition(
            "update department", department_id=department_id,
            old_faculty_id=old_hod, new_faculty_id=new_hod,
        ) as t:
            # Plain fields first; the HOD change below undoes them if it fails
            if remaining:
                previous = {k: getattr(department, k) for k in remaining}
                await department_service.update_department(
                    session, department_id, DepartmentUpdate(**remaining)
                )
                t.on_rollback(
                    f"restore fields of department {department_id}",
                    lambda: department_service.update_department(
                        session, department_id, DepartmentUpdate(**previous)
                    ),
                )

            if old_hod is None:
                activate = department.is_department_active if want_active is None else want_active
                await _assign(session, department_id, new_hod, activate)
            elif new_hod is None:
                current = await department_service.get_department(session, department_id)
                await _release(session, old_hod, current, "clear department HOD")
            else:
                await _reassign(session, department_id, old_hod, new_hod, want_active)

    return await department_service.get_department(session, department_id)


async def replace_hod(
    session: AsyncSession,
    faculty_id: int,
    new_faculty_id: Optional[int],
    keep_department_active: bool = True,
    deactivate_outgoing: bool = False,
) -> HodReplacement:
    """
    Step an HOD down: hand the department to `new_faculty_id`, or leave it
    without an HOD (and therefore inactive). Optionally deactivates the
    outgoing faculty afterwards.
    """
    if keep_department_active and new_faculty_id is None:
        raise InvalidState("Keeping the department active requires a replacement HOD")
    if new_faculty_id == faculty_id:
        raise InvalidState("The replacement HOD must be a different faculty member")

    department = await department_service.find_by_hod_id(session, faculty_id)
    if department is None:
        outgoing = await faculty_service.get_faculty(session, faculty_id)
        raise InvalidState(f"{outgoing.full_name} is not HOD of any department")

    async with _serialized(
        ("department", department.id), ("faculty", faculty_id), ("faculty", new_faculty_id)
    ):
        if new_faculty_id is not None:
            updated = await _reassign(
                session, department.id, faculty_id, new_faculty_id, keep_department_active
            )
        else:
            await _release(session, faculty_id, department, "replace HOD")
            updated = await department_service.get_department(session, department.id)

    if deactivate_outgoing:
        await faculty_service.set_faculty_active(session, faculty_id, False)

    return HodReplacement(
        department=DepartmentRead.model_validate(updated),
        demoted_faculty_id=faculty_id,
        promoted_faculty_id=new_faculty_id,
        department_deactivated=not updated.is_department_active,
        outgoing_deactivated=deactivate_outgoing,
    )


async def toggle_hod_flag(session: AsyncSession, faculty_id: int, is_hod: bool) -> None:
    """HOD status is never toggled on its own; it follows department assignment."""
    faculty = await faculty_service.get_faculty(session, faculty_id)
    action = "promoted to" if is_hod else "demoted from"
    raise InvalidOperation(
        f"{faculty.full_name} cannot be {action} HOD directly; "
        "assign or replace the HOD from department management"
    )


# ------------------------------------------------------------
# RECONCILIATION
# ------------------------------------------------------------
async def check_consistency(
    session: AsyncSession, admin_email: Optional[str] = None
) -> ConsistencyReport:
    faculty_rows = await faculty_service.list_faculty(session, admin_email)
    departments = await department_service.list_departments(session, admin_email)

    known_faculty = {f.id: f for f in faculty_rows}
    if admin_email:
        # HODs may belong to another admin's scope
        for d in departments:
            if d.department_hod_id is not None and d.department_hod_id not in known_faculty:
                try:
                    known_faculty[d.department_hod_id] = await faculty_service.get_faculty(
                        session, d.department_hod_id
                    )
                except NotFound:
                    continue

    chairs: dict[int, list[Department]] = {}
    for d in departments:
        if d.department_hod_id is not None:
            chairs.setdefault(d.department_hod_id, []).append(d)

    issues: list[ConsistencyIssue] = []

    for d in departments:
        if d.is_department_active and d.department_hod_id is None:
            issues.append(ConsistencyIssue(
                kind="active_without_hod", entity="department", entity_id=d.id,
                message=f"{d.name} is active without an HOD",
            ))
        if d.department_hod_id is not None:
            hod = known_faculty.get(d.department_hod_id)
            if hod is None:
                issues.append(ConsistencyIssue(
                    kind="dangling_hod", entity="department", entity_id=d.id,
                    message=f"{d.name} points at missing faculty {d.department_hod_id}",
                ))
            elif not hod.is_hod:
                issues.append(ConsistencyIssue(
                    kind="unflagged_hod", entity="faculty", entity_id=hod.id,
                    message=f"{hod.full_name} chairs {d.name} but is not flagged HOD",
                ))

    for f in faculty_rows:
        chaired = chairs.get(f.id, [])
        if f.is_hod and not chaired:
            issues.append(ConsistencyIssue(
                kind="orphan_hod_flag", entity="faculty", entity_id=f.id,
                message=f"{f.full_name} is flagged HOD but chairs no department",
            ))
        if len(chaired) > 1:
            issues.append(ConsistencyIssue(
                kind="multiple_chairs", entity="faculty", entity_id=f.id,
                message=f"{f.full_name} chairs {', '.join(d.name for d in chaired)}",
            ))
        if f.is_active and not f.has_department:
            issues.append(ConsistencyIssue(
                kind="active_without_department", entity="faculty", entity_id=f.id,
                message=f"{f.full_name} is active without a department",
            ))

    if issues:
        logger.warning("Consistency check found {} issue(s)", len(issues))
    return ConsistencyReport(consistent=not issues, issues=issues)
