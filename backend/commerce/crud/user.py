"""用户 CRUD 操作"""
from sqlmodel import Session, select

from commerce.enums import UserRole
from commerce.models import User


def get_by_email(*, session: Session, email: str) -> User | None:
    """根据邮箱查询用户"""
    statement = select(User).where(User.email == email)
    return session.exec(statement).first()


def create(*, session: Session, email: str, role: UserRole = UserRole.user) -> User:
    """创建新用户"""
    user = User(email=email, role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def get_or_create_by_email(
    *, session: Session, email: str, role: UserRole = UserRole.user
) -> User:
    """根据邮箱获取或创建用户"""
    user = get_by_email(session=session, email=email)
    if user:
        return user
    return create(session=session, email=email, role=role)
