"""Submission Domain Model -- 写手交给 QC 的稿件"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import SubmissionState


class Submission(BaseModel):
    """QC 提交记录，一个订单可累积多条（修订循环）

    仅最新一条决定订单层面的 QC 状态。
    """

    submission_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    order_id: str = Field(description="关联订单 ID")
    writer_id: str = Field(description="提交写手 ID")
    file_url: str = Field(description="稿件地址（不透明引用）")
    notes: str = Field(default="", description="写手备注")
    feedback: str = Field(default="", description="QC 反馈")
    state: SubmissionState = Field(
        default=SubmissionState.PENDING_QC, description="QC 状态"
    )
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
