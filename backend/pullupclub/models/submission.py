"""
视频提交模型模块
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlmodel import Field, SQLModel

from pullupclub.enums import SubmissionStatus, VideoPlatform

from .base import utc_now


class Submission(SQLModel, table=True):
    """
    视频提交模型

    一条记录代表一次引体向上成绩申报，由账户本人创建（pending），
    管理员审核时只会变更一次（approved / rejected），之后不再变化。

    字段说明：
    - id: 主键
    - account_id: 提交者账户 ID（外键）
    - pull_up_count: 申报个数（正整数）
    - actual_pull_up_count: 管理员核定个数，设置后作为排名的权威数据
    - video_url / platform: 视频链接及所属平台
    - status: 审核状态
    - submitted_at / approved_at: 提交时间 / 通过时间
    - notes: 审核备注
    - region / club_affiliation / gender: 冗余字段，用于排行榜筛选

    约束：
    - uq_submissions_one_pending: 部分唯一索引，保证每个账户最多一条 pending，
      两个并发提交不可能同时写入成功
    """
    __tablename__ = "submissions"
    __table_args__ = (
        Index(
            "uq_submissions_one_pending",
            "account_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    account_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("accounts.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )

    pull_up_count: int
    actual_pull_up_count: int | None = Field(default=None)
    video_url: str = Field(max_length=512)
    platform: VideoPlatform = Field(sa_column=Column(String(16), nullable=False))

    status: SubmissionStatus = Field(
        default=SubmissionStatus.pending,
        sa_column=Column(String(16), index=True, nullable=False),
    )
    submitted_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False),
    )
    approved_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    reviewed_by: int | None = Field(default=None)
    notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))

    region: str | None = Field(default=None, max_length=64)
    club_affiliation: str | None = Field(default=None, max_length=128)
    gender: str | None = Field(default=None, max_length=16)

    @property
    def effective_count(self) -> int:
        """排名使用的个数：有核定值时以核定值为准"""
        if self.actual_pull_up_count is not None:
            return self.actual_pull_up_count
        return self.pull_up_count
