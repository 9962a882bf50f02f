from sqlalchemy.orm import Session
from typing import Optional, List
import bcrypt

from telem.db.core import UserDB, CalculatorDB, UserRole, UserStatus, NotFoundError, ConflictError, atomic
from telem.models.user import UserCreate, UserUpdate
from telem.logging_config import get_logger

logger = get_logger(__name__)


# ===== PASSWORD HASHING UTILITIES =====

def hash_password(password: str) -> str:
    """Hash a password with bcrypt"""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))


# ===== DATABASE OPERATIONS =====

def lock_db_user(db: Session, user_id: int) -> UserDB:
    """Load a user row under SELECT ... FOR UPDATE so its counter can be changed safely"""
    db_user = (
        db.query(UserDB)
        .filter(UserDB.id == user_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not db_user:
        raise NotFoundError(f"User with id {user_id} not found")
    return db_user


def create_db_user(db: Session, user_data: UserCreate, role: UserRole = UserRole.INVESTOR) -> UserDB:
    """Create a new user with the given role"""

    existing_username = db.query(UserDB).filter(UserDB.username == user_data.username).first()
    if existing_username:
        raise ConflictError("Username already taken")

    db_user = UserDB(
        username=user_data.username,
        password_hash=hash_password(user_data.password),
        name=user_data.name,
        email=user_data.email,
        phone=user_data.phone,
        role=role,
        status=user_data.status,
        calculators_count=0,
    )

    with atomic(db):
        db.add(db_user)

    db.refresh(db_user)
    logger.info(f"Created {role.value} user {db_user.id} ({db_user.username})")
    return db_user


def read_db_user(db: Session, user_id: Optional[int] = None, username: Optional[str] = None) -> Optional[UserDB]:
    """Read a user by id or username"""

    query = db.query(UserDB)

    if user_id is not None:
        return query.filter(UserDB.id == user_id).first()
    elif username:
        return query.filter(UserDB.username == username.lower()).first()
    else:
        raise ValueError("Must provide at least one identifier (user_id or username)")


def read_db_users(db: Session, role: Optional[UserRole] = None, skip: int = 0, limit: int = 100) -> List[UserDB]:
    query = db.query(UserDB)
    if role:
        query = query.filter(UserDB.role == role)
    return query.order_by(UserDB.name).offset(skip).limit(limit).all()


def count_db_users(db: Session, role: Optional[UserRole] = None) -> int:
    query = db.query(UserDB)
    if role:
        query = query.filter(UserDB.role == role)
    return query.count()


def update_db_user(db: Session, user_id: int, user_updates: UserUpdate) -> UserDB:
    """
    Update a user's profile.

    A new password is re-hashed before storing. A name change is copied onto
    investor_name of every calculator the user owns, in the same transaction.
    """
    update_data = user_updates.model_dump(exclude_unset=True)

    with atomic(db):
        db_user = lock_db_user(db, user_id)
        old_name = db_user.name

        for field, value in update_data.items():
            if field == 'password':
                db_user.password_hash = hash_password(value)
            else:
                setattr(db_user, field, value)

        if db_user.name != old_name:
            synced = (
                db.query(CalculatorDB)
                .filter(CalculatorDB.user_id == user_id)
                .update({CalculatorDB.investor_name: db_user.name}, synchronize_session="fetch")
            )
            logger.debug(f"Synced investor name on {synced} calculators of user {user_id}")

    db.refresh(db_user)
    logger.info(f"Updated user {user_id}: {sorted(update_data.keys())}")
    return db_user


def authenticate_user(db: Session, username: str, password: str) -> Optional[UserDB]:
    """Return the user when the credentials match an active account"""
    db_user = read_db_user(db, username=username)
    if not db_user or not verify_password(password, db_user.password_hash):
        return None
    if db_user.status != UserStatus.ACTIVE:
        return None
    return db_user
