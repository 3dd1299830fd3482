"""EnrichmentSettings -- 自动 enrichment 配置加载

阈值与时间窗口均可通过环境变量覆盖；非法值记录警告并回退默认值，不阻塞启动。
"""

import os

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


class EnrichmentSettings(BaseModel):
    """Enrichment 编排参数

    环境变量:
        TICKETFLOW_AUTO_ENRICH: 是否在 created 事件上自动触发（默认 true）
        TICKETFLOW_ENRICH_MAX_AGE_S: 仅处理创建时间在此窗口内的 ticket（默认 300）
        TICKETFLOW_ENRICH_SUPPRESSION_S: 完成后抑制再次触发的窗口（默认 600）
        TICKETFLOW_ENRICH_MAX_RETRIES: 调用重试上限（默认 3）
        TICKETFLOW_ENRICH_RETRY_DELAY_S: 重试间隔（默认 5）
        TICKETFLOW_ENRICH_RECONCILE_AFTER_S: 进入活跃后多久执行超时对账（默认 600）
    """

    auto_enrich: bool = Field(default=True, description="created 事件上自动触发")
    content_length_threshold: int = Field(default=500, ge=0, description="正文完整度长度阈值")
    max_age_s: float = Field(default=300, gt=0, description="ticket 年龄窗口（秒）")
    suppression_s: float = Field(default=600, ge=0, description="完成后抑制窗口（秒）")
    max_retries: int = Field(default=3, ge=1, description="调用重试上限")
    retry_delay_s: float = Field(default=5, ge=0, description="重试间隔（秒）")
    reconcile_after_s: float = Field(default=600, ge=0, description="超时对账延迟（秒）")
    complete_score_threshold: int = Field(
        default=60, ge=0, le=100, description="对账时判定已完成的质量分下限"
    )


_FLOAT_ENV = {
    "TICKETFLOW_ENRICH_MAX_AGE_S": "max_age_s",
    "TICKETFLOW_ENRICH_SUPPRESSION_S": "suppression_s",
    "TICKETFLOW_ENRICH_RETRY_DELAY_S": "retry_delay_s",
    "TICKETFLOW_ENRICH_RECONCILE_AFTER_S": "reconcile_after_s",
}


def load_enrichment_settings() -> EnrichmentSettings:
    """从环境变量加载 EnrichmentSettings"""
    kwargs: dict = {}

    if val := os.environ.get("TICKETFLOW_AUTO_ENRICH"):
        kwargs["auto_enrich"] = val.strip().lower() not in ("0", "false", "no", "off")

    for env_var, field in _FLOAT_ENV.items():
        if val := os.environ.get(env_var):
            try:
                kwargs[field] = float(val)
            except ValueError:
                log.warning("invalid_enrichment_config", env_var=env_var, value=val)

    if val := os.environ.get("TICKETFLOW_ENRICH_MAX_RETRIES"):
        try:
            kwargs["max_retries"] = int(val)
        except ValueError:
            log.warning(
                "invalid_enrichment_config",
                env_var="TICKETFLOW_ENRICH_MAX_RETRIES",
                value=val,
            )

    return EnrichmentSettings(**kwargs)
