"""
应用启动前检查脚本

在应用启动前等待数据库就绪（Docker Compose 中数据库容器可能还在初始化）。
每秒重试一次，最多 5 分钟。

执行顺序（见部署脚本）：
1. python -m pullupclub.backend_pre_start
2. python -m pullupclub.initial_data
3. 启动 uvicorn
"""
import logging

from sqlalchemy import Engine
from sqlmodel import Session, select
from tenacity import after_log, before_log, retry, stop_after_attempt, wait_fixed

from pullupclub.core.db import engine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

max_tries = 60 * 5  # 5 分钟
wait_seconds = 1


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def init(db_engine: Engine) -> None:
    """
    执行 select(1) 验证数据库连接，失败时由 tenacity 重试

    Args:
        db_engine: 数据库引擎实例
    """
    try:
        with Session(db_engine) as session:
            session.exec(select(1))
    except Exception as e:
        logger.error(e)
        raise e


def main() -> None:
    logger.info("Waiting for database")
    init(engine)
    logger.info("Database is ready")


if __name__ == "__main__":  # pragma: no cover
    main()
