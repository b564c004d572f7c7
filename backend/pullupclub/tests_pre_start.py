"""
测试启动前检查脚本

在 CI 中运行集成测试前等待 PostgreSQL 就绪，
复用 backend_pre_start 的重试策略。
"""
import logging

from pullupclub.backend_pre_start import init
from pullupclub.core.db import engine

logger = logging.getLogger(__name__)


def main() -> None:
    logger.info("Waiting for test database")
    init(engine)
    logger.info("Test database is ready")


if __name__ == "__main__":  # pragma: no cover
    main()
