"""
User registry.

Cashiers register members; managers verify them, flag cashiers as suspicious
and change roles. Balances are never edited here, only through the ledger.
"""
import logging
from typing import Any, Dict, Mapping

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.user import UTORID_PATTERN, Role, User
from ..utils.exceptions import ConflictError, ForbiddenError, UserNotFoundError, ValidationError
from .commands import CallerContext
from .transaction_query import Page, _parse_bool

logger = logging.getLogger(__name__)


class UserService:
    """Registration, lookup and account-state updates for users."""

    def __init__(self, session: Session):
        self.session = session

    def create_user(self, caller: CallerContext, payload: Mapping[str, Any]) -> User:
        if not Role(caller.role).at_least(Role.CASHIER):
            raise ForbiddenError("Role cashier or higher required to register users")

        utorid = payload.get('utorid')
        if not isinstance(utorid, str) or not UTORID_PATTERN.match(utorid):
            raise ValidationError("utorid must be 7-8 alphanumeric characters", 'utorid')
        email = payload.get('email')
        if not isinstance(email, str) or '@' not in email:
            raise ValidationError("email must be a valid address", 'email')
        name = payload.get('name')
        if not isinstance(name, str) or not 1 <= len(name.strip()) <= 50:
            raise ValidationError("name must be 1-50 characters", 'name')

        user = User(utorid=utorid.lower(), email=email.lower(), name=name.strip())
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError(f"User with utorid {utorid} or email {email} already exists")

        logger.info(f"User {user.utorid} registered by {caller.subject}")
        return user

    def get_user(self, identifier) -> User:
        """
        Look up a user by utorid or numeric id.

        utorids may be all digits, so a string is tried as a utorid first.
        """
        user = None
        if isinstance(identifier, str):
            user = self.session.scalars(
                select(User).where(User.utorid == identifier.lower())
            ).first()
        if user is None and (isinstance(identifier, int) or identifier.isdecimal()):
            user = self.session.get(User, int(identifier))
        if user is None:
            raise UserNotFoundError(identifier)
        return user

    def list_users(self, caller: CallerContext, args: Mapping[str, Any], page: Page) -> Dict[str, Any]:
        if not Role(caller.role).at_least(Role.MANAGER):
            raise ForbiddenError("Role manager or higher required to list users")

        stmt = select(User)
        name = args.get('name')
        if name:
            pattern = f'%{name}%'
            stmt = stmt.where(or_(User.utorid.ilike(pattern), User.name.ilike(pattern)))
        role = args.get('role')
        if role:
            if role not in [r.value for r in Role]:
                raise ValidationError("role is not a valid role", 'role')
            stmt = stmt.where(User.role == role)
        verified = _parse_bool(args.get('verified'), 'verified')
        if verified is not None:
            stmt = stmt.where(User.verified.is_(verified))

        count = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar()
        users = self.session.scalars(
            stmt.order_by(User.id).limit(page.limit).offset(page.offset)
        ).all()
        return {'count': count, 'results': [u.to_dict() for u in users]}

    def update_user(self, caller: CallerContext, identifier, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Update verified, suspicious and role.

        Returns the id, utorid, name and the fields that changed.

        Raises:
            ForbiddenError: caller below manager, or a manager granting manager/superuser
            ValidationError: malformed field, or promoting a suspicious user to cashier
        """
        caller_role = Role(caller.role)
        if not caller_role.at_least(Role.MANAGER):
            raise ForbiddenError("Role manager or higher required to update users")

        user = self.get_user(identifier)
        updated: Dict[str, Any] = {}

        if payload.get('verified') is not None:
            if payload['verified'] is not True:
                raise ValidationError("verified can only be set to true", 'verified')
            user.verified = updated['verified'] = True

        if payload.get('suspicious') is not None:
            if not isinstance(payload['suspicious'], bool):
                raise ValidationError("suspicious must be a boolean", 'suspicious')
            user.suspicious = updated['suspicious'] = payload['suspicious']

        if payload.get('role') is not None:
            try:
                new_role = Role(payload['role'])
            except ValueError:
                raise ValidationError("role is not a valid role", 'role')
            if new_role.at_least(Role.MANAGER) and caller_role != Role.SUPERUSER:
                raise ForbiddenError("Only a superuser can grant manager or superuser")
            if new_role == Role.CASHIER and user.suspicious:
                raise ValidationError("A suspicious user cannot be made a cashier", 'role')
            user.role = updated['role'] = new_role.value

        if not updated:
            raise ValidationError("No fields to update")

        self.session.commit()
        logger.info(f"User {user.utorid} updated: {updated}")

        return {'id': user.id, 'utorid': user.utorid, 'name': user.name, **updated}
