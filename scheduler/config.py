"""수집 작업 큐 / 주기 스케줄 설정."""

from pydantic_settings import BaseSettings


class QueueSettings(BaseSettings):
    # 재시도
    attempts: int = 3
    backoff_base_s: float = 5.0

    # 작업 실행
    job_timeout_s: float = 300.0
    default_priority: int = 10
    manual_priority: int = 1

    # stall 감지
    lock_duration_s: float = 300.0
    heartbeat_interval_s: float = 30.0
    stalled_check_interval_s: float = 30.0
    max_stalled_count: int = 2

    # 이력 보관
    max_history: int = 1000

    # 주기 수집 (cron)
    cron_enabled: bool = True
    cron_interval_hours: int = 12
    cron_priority: int = 20
    cron_secret: str = ""

    model_config = {"env_prefix": "QUEUE_"}


queue_settings = QueueSettings()
