import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import EmailStr
from sqlalchemy import func, or_
from sqlmodel import Field, Session, SQLModel, select

from ..core.security import get_current_user
from ..database import get_session
from ..models.expense import Expense, TransactionType
from ..models.split import OPEN_SPLIT_STATUSES, ExpenseSplit, SplitGroup, SplitStatus, SplitType
from ..models.user import User
from ..services.splits import Participant, SplitAllocationError, allocate_split
from .expenses import Pagination

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/splits",
    tags=["splits"],
)

# ─────────────────────────────
#   SCHEMAS
# ─────────────────────────────


class ParticipantIn(SQLModel):
    email: EmailStr
    name: str = Field(min_length=1, max_length=100)
    percentage: Optional[float] = None
    amount: Optional[float] = None


class SplitCreate(SQLModel):
    expense_id: uuid.UUID
    split_type: SplitType = SplitType.equal
    participants: List[ParticipantIn] = Field(min_length=1)
    group_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None


class SplitRead(SQLModel):
    id: uuid.UUID
    expense_id: uuid.UUID
    payer_id: uuid.UUID
    group_id: Optional[uuid.UUID] = None
    participant_email: str
    participant_name: str
    amount: float
    percentage: Optional[float] = None
    split_type: SplitType
    status: SplitStatus
    notes: Optional[str] = None
    settled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class SplitList(SQLModel):
    splits: List[SplitRead]
    pagination: Pagination


class SplitStatusIn(SQLModel):
    status: SplitStatus


class MemberIn(SQLModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr


class GroupCreate(SQLModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    members: List[MemberIn] = Field(default_factory=list)


class GroupUpdate(SQLModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    members: Optional[List[MemberIn]] = None
    is_active: Optional[bool] = None


class GroupRead(SQLModel):
    id: uuid.UUID
    creator_id: uuid.UUID
    name: str
    description: Optional[str] = None
    members: List[Dict[str, str]]
    total_expenses: float
    is_active: bool
    created_at: datetime
    updated_at: datetime


# ─────────────────────────────
#   HELPERS
# ─────────────────────────────


def _involving(user: User):
    return or_(ExpenseSplit.payer_id == user.id, ExpenseSplit.participant_email == user.email)


def _get_owned_group(session: Session, user: User, group_id: uuid.UUID) -> SplitGroup:
    group = session.get(SplitGroup, group_id)
    if not group or group.creator_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Split group not found")
    return group


def _members(creator: User, members: List[MemberIn]) -> List[Dict[str, str]]:
    """Normalized member list with the creator first and no duplicate emails."""
    out = [{"name": creator.full_name or creator.email, "email": creator.email}]
    seen = {creator.email}
    for m in members:
        email = m.email.strip().lower()
        if email in seen:
            continue
        seen.add(email)
        out.append({"name": m.name.strip(), "email": email})
    return out


# ─────────────────────────────
#   SPLITS
# ─────────────────────────────


@router.post(
    "",
    response_model=List[SplitRead],
    status_code=status.HTTP_201_CREATED,
)
def create_split(
    payload: SplitCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Split one of the user's expenses with other people.

    The payer gets a row of their own, already ``paid``, holding whatever is
    left after the participants' shares are rounded to cents.
    """
    expense = session.get(Expense, payload.expense_id)
    if not expense or expense.deleted_at is not None or expense.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found")
    if expense.type != TransactionType.expense:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only expenses can be split")

    already = session.exec(select(ExpenseSplit.id).where(ExpenseSplit.expense_id == expense.id)).first()
    if already is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Expense is already split")

    group = _get_owned_group(session, current_user, payload.group_id) if payload.group_id else None

    emails = [p.email.strip().lower() for p in payload.participants]
    if current_user.email in emails or len(set(emails)) != len(emails):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Participants must be distinct and exclude the payer",
        )

    try:
        shares = allocate_split(
            expense.amount,
            Participant(email=current_user.email, name=current_user.full_name or current_user.email),
            [
                Participant(email=email, name=p.name.strip(), percentage=p.percentage, amount=p.amount)
                for email, p in zip(emails, payload.participants)
            ],
            payload.split_type,
        )
    except SplitAllocationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    now = datetime.utcnow()
    rows = []
    for share in shares:
        row = ExpenseSplit(
            expense_id=expense.id,
            payer_id=current_user.id,
            group_id=group.id if group else None,
            participant_email=share.email,
            participant_name=share.name,
            amount=share.amount,
            percentage=share.percentage,
            split_type=payload.split_type,
            status=SplitStatus.paid if share.is_payer else SplitStatus.pending,
            settled_at=now if share.is_payer else None,
            notes=payload.notes,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        rows.append(row)

    if group is not None:
        group.total_expenses = round(group.total_expenses + expense.amount, 2)
        group.updated_at = now
        session.add(group)

    session.commit()
    for row in rows:
        session.refresh(row)
    logger.info("Split expense %s between %d people", expense.id, len(rows))
    return rows


@router.get(
    "",
    response_model=SplitList,
)
def list_splits(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status_: Optional[SplitStatus] = Query(default=None, alias="status"),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    stmt = select(ExpenseSplit).where(_involving(current_user))
    if status_ is not None:
        stmt = stmt.where(ExpenseSplit.status == status_)

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    rows = session.exec(
        stmt.order_by(ExpenseSplit.created_at.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return SplitList(
        splits=rows,
        pagination=Pagination(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit),
    )


@router.get("/summary")
def split_summary(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """What the user owes others and what others owe the user."""
    open_rows = session.exec(
        select(ExpenseSplit).where(_involving(current_user), ExpenseSplit.status.in_(OPEN_SPLIT_STATUSES))
    ).all()

    total_owed = total_owing = 0.0
    owed_count = owing_count = 0
    for row in open_rows:
        if row.payer_id != current_user.id and row.participant_email == current_user.email:
            total_owed += row.amount
            owed_count += 1
        elif row.payer_id == current_user.id and row.participant_email != current_user.email:
            total_owing += row.amount
            owing_count += 1

    recent = session.exec(
        select(ExpenseSplit).where(_involving(current_user)).order_by(ExpenseSplit.created_at.desc()).limit(5)
    ).all()

    return {
        "total_owed": round(total_owed, 2),
        "total_owing": round(total_owing, 2),
        "net_balance": round(total_owing - total_owed, 2),
        "owed_count": owed_count,
        "owing_count": owing_count,
        "recent_splits": [SplitRead.model_validate(r) for r in recent],
    }


@router.get(
    "/expense/{expense_id}",
    response_model=List[SplitRead],
)
def splits_for_expense(
    expense_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    rows = session.exec(
        select(ExpenseSplit)
        .where(ExpenseSplit.expense_id == expense_id)
        .order_by(ExpenseSplit.created_at.asc())
    ).all()
    visible = any(r.payer_id == current_user.id or r.participant_email == current_user.email for r in rows)
    if not visible:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No splits found for this expense")
    return rows


@router.patch(
    "/{split_id}/status",
    response_model=SplitRead,
)
def update_split_status(
    split_id: uuid.UUID,
    payload: SplitStatusIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    split = session.get(ExpenseSplit, split_id)
    if not split or (split.payer_id != current_user.id and split.participant_email != current_user.email):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Split not found")

    now = datetime.utcnow()
    split.status = payload.status
    split.settled_at = now if payload.status == SplitStatus.paid else None
    split.updated_at = now
    session.add(split)
    session.commit()
    session.refresh(split)
    return split


# ─────────────────────────────
#   GROUPS
# ─────────────────────────────


@router.post(
    "/groups",
    response_model=GroupRead,
    status_code=status.HTTP_201_CREATED,
)
def create_group(
    payload: GroupCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    now = datetime.utcnow()
    group = SplitGroup(
        creator_id=current_user.id,
        name=payload.name.strip(),
        description=payload.description,
        members=_members(current_user, payload.members),
        total_expenses=0,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    session.add(group)
    session.commit()
    session.refresh(group)
    return group


@router.get(
    "/groups",
    response_model=List[GroupRead],
)
def list_groups(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Groups the user created or has a split in."""
    joined = select(ExpenseSplit.group_id).where(
        ExpenseSplit.participant_email == current_user.email,
        ExpenseSplit.group_id.is_not(None),
    )
    stmt = (
        select(SplitGroup)
        .where(or_(SplitGroup.creator_id == current_user.id, SplitGroup.id.in_(joined)))
        .order_by(SplitGroup.created_at.desc())
    )
    return session.exec(stmt).all()


@router.put(
    "/groups/{group_id}",
    response_model=GroupRead,
)
def update_group(
    group_id: uuid.UUID,
    payload: GroupUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    group = _get_owned_group(session, current_user, group_id)
    data = payload.model_dump(exclude_unset=True, exclude={"members"})
    if not data and payload.members is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    if data.get("name") is not None:
        group.name = data["name"].strip()
    if "description" in data:
        group.description = data["description"]
    if data.get("is_active") is not None:
        group.is_active = data["is_active"]
    if payload.members is not None:
        group.members = _members(current_user, payload.members)

    group.updated_at = datetime.utcnow()
    session.add(group)
    session.commit()
    session.refresh(group)
    return group


@router.delete(
    "/groups/{group_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_group(
    group_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    group = _get_owned_group(session, current_user, group_id)
    splits = session.exec(select(ExpenseSplit).where(ExpenseSplit.group_id == group.id)).all()
    if any(s.status in OPEN_SPLIT_STATUSES for s in splits):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete a group with pending splits",
        )

    # settled splits outlive the group
    for s in splits:
        s.group_id = None
        session.add(s)
    session.flush()
    session.delete(group)
    session.commit()
    return None
