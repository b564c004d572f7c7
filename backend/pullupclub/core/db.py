"""
数据库连接模块

管理数据库引擎的创建，以及初始数据（首个管理员账户）的写入。

重要提示：
- 数据库表结构由迁移管理，不要在这里创建表
- 确保在使用前导入所有模型（pullupclub.models），否则关系可能无法正确初始化
"""
import logging

from sqlmodel import Session, create_engine

from pullupclub import crud
from pullupclub.core.config import settings
from pullupclub.models import AdminRole

logger = logging.getLogger(__name__)

# 创建数据库引擎（连接池）
engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI))


def init_db(session: Session) -> None:
    """
    初始化数据库种子数据

    如果配置了 FIRST_ADMIN_EMAIL / FIRST_ADMIN_PASSWORD，
    确保该账户存在并拥有管理员角色。重复执行是安全的。

    Args:
        session: 数据库会话
    """
    if not settings.FIRST_ADMIN_EMAIL or not settings.FIRST_ADMIN_PASSWORD:
        return

    account = crud.get_account_by_email(session=session, email=settings.FIRST_ADMIN_EMAIL)
    if not account:
        account = crud.create_account(
            session=session,
            email=settings.FIRST_ADMIN_EMAIL,
            password=settings.FIRST_ADMIN_PASSWORD,
        )
        logger.info(f"Created first admin account {account.email}")

    if not crud.is_admin(session=session, account_id=account.id):
        session.add(AdminRole(account_id=account.id))
        session.commit()
        logger.info(f"Granted admin role to account {account.id}")
