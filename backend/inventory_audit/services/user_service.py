# Overview: Service-layer operations for users and roles.

from __future__ import annotations

from sqlalchemy import func

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import AssetPurchase, Audit, Role, User, audit_participants
from ..validation import coerce_int
from .activity_service import ActionType, diff_fields, entity_ref, record_activity
from .transaction import atomic


def get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def get_users_by_ids(user_ids, field: str = "participant_ids") -> list[User]:
    """
    Load users for a list of ids, preserving uniqueness.

    Ids may arrive as ints or digit strings from JSON. None means no users.

    Raises:
        ValidationError: not a list, or an element that is not an integer
        NotFoundError: names every missing id
    """
    if user_ids is None:
        return []
    if not isinstance(user_ids, (list, tuple)):
        raise ValidationError(f"{field} must be a list of user ids")

    ids: list[int] = []
    for raw in user_ids:
        user_id = coerce_int(field, raw)
        if user_id not in ids:
            ids.append(user_id)
    if not ids:
        return []

    found = {u.id: u for u in db.session.query(User).filter(User.id.in_(ids)).all()}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFoundError("User not found", details={"missing_user_ids": missing})
    return [found[i] for i in ids]


def get_user(user_id: int) -> dict:
    return get_user_or_404(user_id).to_dict()


def get_user_by_mobile(mobile: str) -> User:
    user = db.session.query(User).filter_by(mobile=(mobile or "").strip()).first()
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users() -> list[dict]:
    return [u.to_dict() for u in db.session.query(User).order_by(User.name.asc(), User.id.asc()).all()]


def create_user(
    *,
    name: str,
    mobile: str,
    role_id: int | None = None,
    is_superuser: bool = False,
    created_by_user_id: int | None = None,
) -> User:
    """
    Create a user account. Mobile numbers are unique.

    Raises:
        ValidationError: missing name or mobile
        NotFoundError: unknown role_id
        ConflictError: mobile already registered
    """
    name = (name or "").strip()
    mobile = (mobile or "").strip()
    if not name:
        raise ValidationError("Name is required")
    if not mobile:
        raise ValidationError("Mobile is required")

    if role_id is not None and db.session.get(Role, role_id) is None:
        raise NotFoundError("Role not found")
    if db.session.query(User.id).filter_by(mobile=mobile).first():
        raise ConflictError("Mobile number already registered")

    with atomic("Mobile number already registered"):
        user = User(name=name, mobile=mobile, role_id=role_id, is_superuser=bool(is_superuser))
        db.session.add(user)
        db.session.flush()
        record_activity(
            user_id=created_by_user_id,
            entity=entity_ref(user),
            action=ActionType.CREATE,
            after=user.to_dict(),
            description=f"Created user {user.name}",
        )
    return user


USER_FIELD_LABELS = {
    "name": "Name",
    "mobile": "Mobile",
    "role": "Role",
    "is_active": "Active",
}


def update_user(target_user_id: int, *, patch: dict, user_id: int | None) -> dict:
    """
    Apply a validated patch (name, mobile, role_id, is_active).

    Raises:
        ValidationError: blank name/mobile, or deactivating your own account
        NotFoundError: unknown user or role_id
        ConflictError: mobile already registered to another user
    """
    user = get_user_or_404(target_user_id)
    before = user.to_dict()

    name = user.name
    if "name" in patch:
        name = (patch["name"] or "").strip()
        if not name:
            raise ValidationError("Name is required")

    mobile = user.mobile
    if "mobile" in patch:
        mobile = (patch["mobile"] or "").strip()
        if not mobile:
            raise ValidationError("Mobile is required")
        taken = db.session.query(User.id).filter(User.mobile == mobile, User.id != user.id).first()
        if taken:
            raise ConflictError("Mobile number already registered")

    role = user.role
    if "role_id" in patch:
        role = None
        if patch["role_id"] is not None:
            role = db.session.get(Role, patch["role_id"])
            if role is None:
                raise NotFoundError("Role not found")

    is_active = user.is_active
    if "is_active" in patch and patch["is_active"] is not None:
        is_active = bool(patch["is_active"])
        if not is_active and user.id == user_id:
            raise ValidationError("You cannot deactivate your own account")

    user.name, user.mobile, user.role, user.is_active = name, mobile, role, is_active
    changes = diff_fields(before, user.to_dict(), USER_FIELD_LABELS)
    if not changes:
        db.session.rollback()
        return before

    with atomic("Mobile number already registered"):
        db.session.flush()
        after = user.to_dict()
        record_activity(
            user_id=user_id,
            entity=entity_ref(user),
            action=ActionType.UPDATE,
            before=before,
            after=after,
            changes=changes,
            description=f"Updated user {user.name}: {', '.join(changes)}",
        )
    return after


def _user_reference_counts(target_user_id: int) -> dict[str, int]:
    audits = db.session.query(func.count(Audit.id)).filter(Audit.created_by_user_id == target_user_id).scalar()
    participations = (
        db.session.query(func.count())
        .select_from(audit_participants)
        .filter(audit_participants.c.user_id == target_user_id)
        .scalar()
    )
    purchases = (
        db.session.query(func.count(AssetPurchase.id))
        .filter(AssetPurchase.added_by_user_id == target_user_id)
        .scalar()
    )
    return {
        "audits_created": int(audits or 0),
        "audit_participations": int(participations or 0),
        "asset_purchases": int(purchases or 0),
    }


def delete_user(target_user_id: int, *, user_id: int | None) -> dict:
    """
    Delete a user nobody's records point at.

    Users attributed on audits or purchases are refused with the reference
    counts; deactivate them with update_user instead. History rows they
    authored keep their text and lose the user link.
    """
    user = get_user_or_404(target_user_id)
    if user.id == user_id:
        raise ValidationError("You cannot delete your own account")

    references = _user_reference_counts(user.id)
    if any(references.values()):
        raise ConflictError("User is still referenced and cannot be deleted", details=references)

    before = user.to_dict()
    with atomic():
        record_activity(
            user_id=user_id,
            entity=entity_ref(user),
            action=ActionType.DELETE,
            before=before,
            description=f"Deleted user {user.name}",
        )
        db.session.delete(user)
    return before


def list_roles() -> list[dict]:
    return [r.to_dict() for r in db.session.query(Role).order_by(Role.name.asc()).all()]


def create_role(*, name: str, description: str | None = None) -> Role:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Role name is required")
    if db.session.query(Role.id).filter_by(name=name).first():
        raise ConflictError("Role already exists")

    with atomic("Role already exists"):
        role = Role(name=name, description=description)
        db.session.add(role)
    return role


def get_role_by_name(name: str) -> Role:
    role = db.session.query(Role).filter_by(name=name).first()
    if role is None:
        raise NotFoundError(f"Role '{name}' not found")
    return role
