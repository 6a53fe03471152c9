"""写手招募相关模型：WriterInterest + TaskEvaluation

两者均只由招募引擎在同一事务内写入。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import EvaluationState, InterestState


class WriterInterest(BaseModel):
    """写手对订单的意向记录，(order_id, writer_id) 唯一"""

    interest_id: str = Field(description="唯一标识，ULID 格式")
    order_id: str = Field(description="关联订单 ID")
    writer_id: str = Field(description="写手 ID")
    state: InterestState = Field(description="当前意向状态")
    comment: str = Field(default="", description="写手备注 / 拒绝理由")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")

    @property
    def is_interested(self) -> bool:
        """interested 与历史 accepted 同义"""
        return self.state in (InterestState.INTERESTED, InterestState.ACCEPTED)


class TaskEvaluation(BaseModel):
    """承接写手对任务可行性的评估，(order_id, writer_id) 唯一"""

    evaluation_id: str = Field(description="唯一标识，ULID 格式")
    order_id: str = Field(description="关联订单 ID")
    writer_id: str = Field(description="写手 ID")
    state: EvaluationState = Field(
        default=EvaluationState.PENDING, description="评估状态"
    )
    comment: str = Field(default="", description="评估说明")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")


class InviteResult(BaseModel):
    """一次邀请调用的结果"""

    order_id: str
    invited: list[str] = Field(default_factory=list, description="新建或重新打开为 invited")
    already_invited: list[str] = Field(
        default_factory=list, description="原本已是 invited，无状态变化"
    )
    skipped: list[str] = Field(
        default_factory=list, description="已 interested / assigned，未改动"
    )
