"""
初始数据脚本

数据库就绪后执行：如果配置了 FIRST_ADMIN_EMAIL / FIRST_ADMIN_PASSWORD，
创建首个管理员账户并授予管理员角色。可以重复执行。
"""
import logging

from sqlmodel import Session

from pullupclub.core.db import engine, init_db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init() -> None:
    with Session(engine) as session:
        init_db(session)


def main() -> None:
    logger.info("Creating initial data")
    init()
    logger.info("Initial data created")


if __name__ == "__main__":  # pragma: no cover
    main()
